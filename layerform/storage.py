"""Places where JSON documents are kept."""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Reading or writing stored data failed."""


class FileLike(ABC):
    """A single JSON document that can be loaded and saved."""

    @abstractmethod
    def path(self) -> str:
        """Where the document lives."""

    @abstractmethod
    def load(self) -> Any:
        """Return the decoded document, or None if it does not exist yet."""

    @abstractmethod
    def save(self, value: Any) -> None:
        """Encode and store the document."""


class FileStorage(FileLike):
    """A JSON document in a local file."""

    def __init__(self, fpath: str):
        self._fpath = fpath

    def path(self) -> str:
        return self._fpath

    def load(self) -> Any:
        logger.debug("Reading layers file path=%s", self._fpath)
        try:
            with open(self._fpath, "rb") as fh:
                raw = fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"fail to read {self._fpath}: {exc}") from exc

        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageError(f"fail to parse layers out of {self._fpath}: {exc}") from exc

    def save(self, value: Any) -> None:
        logger.debug("Writing layers to file path=%s", self._fpath)
        try:
            data = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise StorageError(f"fail to marshal filelayers: {exc}") from exc

        parent = os.path.dirname(self._fpath)
        try:
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self._fpath, "w", encoding="utf-8") as fh:
                fh.write(data)
        except OSError as exc:
            raise StorageError(f"fail to write file: {exc}") from exc