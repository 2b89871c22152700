"""Existence checks for tracked files inside a cloned workspace."""

from __future__ import annotations

import stat
from enum import Enum
from typing import TYPE_CHECKING

from git_provisioner.engine.errors import NotARegularFileError

if TYPE_CHECKING:
    from pathlib import Path


class FileStatus(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"
    NOT_A_REGULAR_FILE = "not-a-regular-file"


def probe(path: Path) -> FileStatus:
    """Classify *path* without following a symlink at its last component.

    A symlink, dangling or not, is never a regular file.
    """
    try:
        mode = path.lstat().st_mode
    except (FileNotFoundError, NotADirectoryError):
        return FileStatus.ABSENT
    if not stat.S_ISREG(mode):
        return FileStatus.NOT_A_REGULAR_FILE
    return FileStatus.PRESENT


def require_regular_file(path: Path, *, display: str | None = None) -> bool:
    """Return True if *path* is a regular file, False if it is absent.

    Raises:
        NotARegularFileError: if something other than a regular file is there.
    """
    status = probe(path)
    if status is FileStatus.NOT_A_REGULAR_FILE:
        raise NotARegularFileError(display or str(path))
    return status is FileStatus.PRESENT
