"""
Request input checks shared by the leaderboard services.

Each validator returns the cleaned value or raises the domain
`ValidationError`, whose message is safe to hand back to API callers.
Rejections are logged at DEBUG only; they are client mistakes.

Ids and names are stripped. College names and achievement labels are
returned verbatim because grouping and set membership compare them exactly.
"""

from __future__ import annotations

from typing import Any, List, NoReturn, Optional

from rankboard.core.logging.logger import get_logger
from rankboard.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

_WHOLE_NUMBER = "must be a whole number"


def _reject(field_name: str, value: Any, problem: str) -> NoReturn:
    logger.debug(
        "Rejected input",
        extra={"field_name": field_name, "raw_value": repr(value)[:200], "reason": problem},
    )
    raise ValidationError(field_name, f"{field_name} {problem}")


def _as_int(value: Any, field_name: str, strict: bool) -> int:
    # bool is an int subclass but never a valid count.
    if value is None:
        _reject(field_name, value, "is required")
    if isinstance(value, bool) or (strict and not isinstance(value, int)):
        _reject(field_name, value, _WHOLE_NUMBER)
    if isinstance(value, float) and not value.is_integer():
        _reject(field_name, value, _WHOLE_NUMBER)
    try:
        return int(value)
    except (TypeError, ValueError):
        _reject(field_name, value, _WHOLE_NUMBER)


class InputValidator:
    """Namespace of static validators."""

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        strict: bool = False,
    ) -> int:
        """
        Integer within the optional inclusive bounds.

        Non-strict mode coerces numeric strings and integral floats.
        `strict=True` accepts only `int` instances. Booleans are refused
        in both modes.
        """
        number = _as_int(value, field_name, strict)

        if min_value is not None and number < min_value:
            _reject(field_name, number, f"must be at least {min_value}, got {number}")
        if max_value is not None and number > max_value:
            _reject(field_name, number, f"cannot exceed {max_value}, got {number}")
        return number

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
        strict: bool = True,
    ) -> int:
        return InputValidator.validate_integer(
            value, field_name, min_value=0, max_value=max_value, strict=strict
        )

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        strip: bool = True,
    ) -> str:
        if value is None:
            _reject(field_name, value, "is required")
        if not isinstance(value, str):
            _reject(field_name, value, "must be a string")

        text = value.strip() if strip else value
        visible = len(text.strip())

        if min_length is not None and visible < min_length:
            problem = (
                "cannot be empty"
                if min_length == 1
                else f"must be at least {min_length} characters"
            )
            _reject(field_name, text, problem)
        if max_length is not None and len(text) > max_length:
            _reject(field_name, text, f"cannot exceed {max_length} characters")
        return text

    @staticmethod
    def validate_identifier(value: Any, field_name: str, max_length: int = 64) -> str:
        """Stripped, non-blank string of at most `max_length` characters."""
        return InputValidator.validate_string(
            value, field_name, min_length=1, max_length=max_length
        )

    @staticmethod
    def validate_string_list(
        values: Any,
        field_name: str,
        max_count: Optional[int] = None,
        max_item_length: Optional[int] = None,
    ) -> List[str]:
        """Non-blank strings in their original order; duplicates are kept."""
        if not isinstance(values, (list, tuple)):
            _reject(field_name, values, "must be a list")
        if max_count is not None and len(values) > max_count:
            _reject(field_name, len(values), f"cannot contain more than {max_count} items")

        for position, item in enumerate(values):
            if not isinstance(item, str) or not item.strip():
                _reject(field_name, item, f"item {position} must be a non-empty string")
            if max_item_length is not None and len(item) > max_item_length:
                _reject(
                    field_name,
                    item,
                    f"item {position} cannot exceed {max_item_length} characters",
                )
        return list(values)
