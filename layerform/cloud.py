"""Authenticated HTTP access to the layerform cloud service."""

from __future__ import annotations

from typing import Any

import requests


class CloudError(Exception):
    """A request to the cloud service failed."""


class InvalidCredentialsError(CloudError):
    """The cloud service rejected the e-mail and password."""


class HTTPClient:
    """Sends requests to the cloud service with a bearer token."""

    def __init__(self, base_url: str, token: str):
        self.base_url = base_url
        self._token = token

    @classmethod
    def sign_in(cls, base_url: str, email: str, password: str) -> HTTPClient:
        """Exchange credentials for a token and return a ready client."""
        url = f"{base_url}/v1/auth/signin"
        try:
            res = requests.post(
                url,
                json={"email": email, "password": password},
                headers={"Content-Type": "application/json"},
            )
        except requests.RequestException as exc:
            raise CloudError(f"fail to perform http request to cloud backend: {exc}") from exc

        if res.status_code != 200:
            if res.status_code in (401, 403):
                raise InvalidCredentialsError(
                    f"status code {res.status_code}: invalid credentials"
                )
            raise CloudError(
                f"HTTP request to {url} failed with status code {res.status_code}"
            )

        try:
            body = res.json()
        except ValueError as exc:
            raise CloudError(f"fail to decode auth JSON response: {exc}") from exc
        if not isinstance(body, dict):
            raise CloudError("fail to decode auth JSON response")

        return cls(base_url, body.get("token") or "")

    def request(self, method: str, path: str, payload: Any = None) -> requests.Response:
        """Send a request to ``base_url + path``, with ``payload`` as JSON if given."""
        headers = {"Authorization": "Bearer " + self._token}
        kwargs: dict[str, Any] = {}
        if payload is not None:
            headers["Content-Type"] = "application/json"
            kwargs["json"] = payload
        try:
            return requests.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except requests.RequestException as exc:
            raise CloudError(f"fail to perform http request to cloud backend: {exc}") from exc