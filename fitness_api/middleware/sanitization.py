"""
Request payload sanitization.

Applied to every request body model through SanitizedModel: operator-style
keys are dropped and strings are trimmed before validation, then free-text
fields are HTML-escaped once the field constraints have passed.
"""
import html
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

ESCAPED_FIELDS = frozenset(
    {
        "username",
        "name",
        "notes",
        "meal_description",
        "performance_notes",
        "event_name",
        "reason",
        "points_reason",
    }
)


def _is_unsafe_key(key: Any) -> bool:
    return isinstance(key, str) and (key.startswith("$") or "." in key)


def clean_value(value: Any) -> Any:
    """Drop operator-style keys and trim strings, recursively"""
    if isinstance(value, dict):
        return {key: clean_value(item) for key, item in value.items() if not _is_unsafe_key(key)}
    if isinstance(value, list):
        return [clean_value(item) for item in value]
    if isinstance(value, str):
        return value.strip()
    return value


def escape_fields(value: Any, field: str = "") -> Any:
    """HTML-escape free-text fields in plain decoded data.

    Validated models are left alone: each one escapes its own fields.
    """
    if isinstance(value, BaseModel):
        return value
    if isinstance(value, dict):
        return {key: escape_fields(item, key) for key, item in value.items()}
    if isinstance(value, list):
        return [escape_fields(item, field) for item in value]
    if isinstance(value, str) and field in ESCAPED_FIELDS:
        return html.escape(value, quote=True)
    return value


def sanitize_value(value: Any) -> Any:
    """Full cleanup of a decoded JSON value"""
    return escape_fields(clean_value(value))


class SanitizedModel(BaseModel):
    """Base for request bodies"""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _clean(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return clean_value(data)
        return data

    @model_validator(mode="after")
    def _escape(self):
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, escape_fields(value, name))
        return self
