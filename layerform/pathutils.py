"""Path helpers."""

from __future__ import annotations

import os
from typing import Iterable


def _parent_dir(path: str) -> str:
    parent = os.path.dirname(path)
    return os.path.normpath(parent) if parent else "."


def find_common_parent_path(file_paths: Iterable[str]) -> str:
    """Return the directory the given files have in common."""
    paths = list(file_paths)
    if not paths:
        raise ValueError("at least one file path is required")

    parent_dirs = _parent_dir(paths[0]).split(os.sep)
    for file_path in paths[1:]:
        current_dirs = _parent_dir(file_path).split(os.sep)
        for i, (ours, theirs) in enumerate(zip(parent_dirs, current_dirs)):
            if ours != theirs:
                parent_dirs = parent_dirs[:i]
                break

    return os.sep.join(parent_dirs)