from typing import Any, Iterable, Optional


class ValidationError(Exception):
    """Request payload is missing data or is malformed (HTTP 400)."""


class ConfigurationError(Exception):
    """A required provider credential is not configured (HTTP 500)."""


class ProviderError(Exception):
    """An upstream provider call failed."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


def validate_request_body(body: Any, required_fields: Iterable[str]) -> dict:
    """Check that body is a JSON object containing every required field."""
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body")

    for field in required_fields:
        if field not in body:
            raise ValidationError(f"Missing required field: {field}")

    return body


def parse_int_field(value: Any, field: str) -> int:
    """Coerce an id that may arrive as a string."""
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}")


def require_setting(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigurationError(f"{name} not configured")
    return value
