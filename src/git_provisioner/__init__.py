"""Terraform-style provisioning of files tracked in remote git repositories."""

__version__ = "0.1.0"
