"""Plan-time attribute modifiers.

These run while planning, before any handler is called, and can rewrite the
planned value of a single attribute.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

IGNORE_UPDATES_KEY = "IgnoreUpdates"


def ignore_updates_from_private(private: Mapping[str, str]) -> bool:
    """Read the sticky ignore-updates flag from a resource's private state."""
    return private.get(IGNORE_UPDATES_KEY, "").strip().lower() == "true"


def use_state_if_updates_ignored(
    prior: Any,
    proposed: Any,
    *,
    prior_is_null: bool,
    proposed_is_unknown: bool,
    ignore_updates: bool,
) -> Any:
    """Return the value to plan for an attribute that freezes once ignore-updates is set.

    Once the value exists in state and the flag is set, the stored value wins
    over the configured one, so the attribute never shows a diff.
    """
    if prior_is_null:
        logger.debug("No prior value; planning configured value")
        return proposed
    # Unknown values are resolved later; replacing them now breaks interpolation.
    if proposed_is_unknown:
        logger.debug("Configured value is unknown; planning it unchanged")
        return proposed
    if ignore_updates and proposed != prior:
        logger.debug("Updates are ignored; planning stored value instead of configured value")
        return prior
    return proposed
