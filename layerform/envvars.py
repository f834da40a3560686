"""Backends that store environment variables used when running layers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from layerform.cloud import CloudError, HTTPClient
from layerform.data import EnvVar
from layerform.storage import FileLike, StorageError

logger = logging.getLogger(__name__)


class EnvVarsBackend(ABC):
    """Storage for environment variables."""

    @abstractmethod
    def list_variables(self) -> list[EnvVar]:
        """Every stored variable."""

    @abstractmethod
    def save_variable(self, variable: EnvVar) -> None:
        """Store a variable, replacing one with the same name."""


class FileLikeEnvVarsBackend(EnvVarsBackend):
    """Variables kept in a single JSON document."""

    def __init__(self, storage: FileLike):
        self._storage = storage
        try:
            raw = storage.load()
        except StorageError as exc:
            raise StorageError(f"fail to read file: {exc}") from exc

        if raw is None:
            raw = []
        if not isinstance(raw, list):
            raise StorageError("fail to read file: variables document is not a list")
        try:
            self._variables = [EnvVar.from_dict(item) for item in raw]
        except (AttributeError, TypeError) as exc:
            raise StorageError(f"fail to read file: {exc}") from exc

    def list_variables(self) -> list[EnvVar]:
        return list(self._variables)

    def save_variable(self, variable: EnvVar) -> None:
        for i, existing in enumerate(self._variables):
            if existing.name == variable.name:
                self._variables[i] = variable
                break
        else:
            self._variables.append(variable)

        self._storage.save([v.to_dict() for v in self._variables])


class CloudEnvVarsBackend(EnvVarsBackend):
    """Variables kept by the cloud service."""

    _PATH = "/v1/env-vars"

    def __init__(self, client: HTTPClient):
        self._client = client

    def _call(self, method: str, payload: Any = None) -> requests.Response:
        res = self._client.request(method, self._PATH, payload)
        if res.status_code != 200:
            raise CloudError(
                f"HTTP request to {self._PATH} failed with status code {res.status_code}"
            )
        return res

    def list_variables(self) -> list[EnvVar]:
        res = self._call("GET")
        try:
            raw = res.json()
            return [EnvVar.from_dict(item) for item in raw or []]
        except (ValueError, AttributeError, TypeError) as exc:
            raise CloudError(f"fail to decode variables JSON response: {exc}") from exc

    def save_variable(self, variable: EnvVar) -> None:
        self._call("POST", variable.to_dict())