"""Configuration contexts and their validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from layerform.validation import (
    is_valid_directory,
    is_valid_email,
    is_valid_s3_bucket,
    is_valid_s3_region,
    is_valid_url,
)

CONTEXT_TYPES = ("local", "s3", "cloud")


@dataclass
class ConfigContext:
    """Where definitions, instances and variables are stored."""

    type: str
    dir: str = ""
    bucket: str = ""
    region: str = ""
    url: str = ""
    email: str = ""
    password: str = ""

    def location(self) -> str:
        if self.type == "local":
            return f"dir://{self.dir}"
        if self.type == "s3":
            return f"s3://{self.bucket}"
        if self.type == "cloud":
            return self.url
        raise ValueError(f"unknown context type {self.type}")

    def to_dict(self) -> dict[str, str]:
        raw = {"type": self.type}
        for key in ("dir", "bucket", "region", "url", "email", "password"):
            value = getattr(self, key)
            if value:
                raw[key] = value
        return raw

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> ConfigContext:
        raw = raw or {}

        def text(key: str) -> str:
            value = raw.get(key)
            return "" if value is None else str(value)

        return cls(
            type=text("type"),
            dir=text("dir"),
            bucket=text("bucket"),
            region=text("region"),
            url=text("url"),
            email=text("email"),
            password=text("password"),
        )


class ContextValidationError(ValueError):
    """A context entry is not usable; ``errors`` lists every problem."""

    def __init__(self, message: str, errors: list[str]):
        super().__init__(message)
        self.errors = errors


def _format_errors(errors: list[str]) -> str:
    if len(errors) == 1:
        return f"1 error occurred:\n\t* {errors[0]}\n\n"
    points = "\n\t".join(f"* {e}" for e in errors)
    return f"{len(errors)} errors occurred:\n\t{points}\n\n"


def validate_context(ctx: ConfigContext) -> None:
    """Raise ContextValidationError if the context is incomplete or malformed."""
    errors: list[str] = []

    if ctx.type == "local":
        if ctx.dir == "":
            errors.append("directory path cannot be empty")
        elif not is_valid_directory(ctx.dir):
            errors.append(f"invalid directory path: {ctx.dir}")
    elif ctx.type == "s3":
        if ctx.bucket == "":
            errors.append("S3 bucket name cannot be empty")
        elif not is_valid_s3_bucket(ctx.bucket):
            errors.append(f"invalid S3 bucket name: {ctx.bucket}")
        if ctx.region == "":
            errors.append("S3 bucket region cannot be empty")
        elif not is_valid_s3_region(ctx.region):
            errors.append(f"invalid S3 bucket region: {ctx.region}")
    elif ctx.type == "cloud":
        if ctx.email == "":
            errors.append("email cannot be empty")
        elif not is_valid_email(ctx.email):
            errors.append(f"invalid email: {ctx.email}")
        if ctx.password == "":
            errors.append("password cannot be empty")
        if ctx.url == "":
            errors.append("URL cannot be empty")
        elif not is_valid_url(ctx.url):
            errors.append(f"invalid URL: {ctx.url}")
    else:
        raise ContextValidationError("invalid context type", ["invalid context type"])

    if errors:
        raise ContextValidationError(_format_errors(errors), errors)