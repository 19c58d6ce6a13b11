"""Predicates and accessors for async result values.

An async store holds one of three shapes:
    {"loading": True}                                   while running
    {"error": True, "message": str, "status": object}   after a failure
    anything else                                       the successful result
"""

from __future__ import annotations

from collections.abc import Mapping


def is_loading(data: object) -> bool:
    return isinstance(data, Mapping) and data.get("loading") is True


def is_error(data: object) -> bool:
    return isinstance(data, Mapping) and data.get("error") is True


def is_success(data: object) -> bool:
    """A settled, non-error result. None counts as no result."""
    return data is not None and not is_error(data) and not is_loading(data)


def get_error_message(data: object) -> str | None:
    return data["message"] if is_error(data) else None


def get_error_status(data: object) -> object:
    return data["status"] if is_error(data) else None
