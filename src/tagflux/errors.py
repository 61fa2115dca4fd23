"""Error taxonomy.

Every library error carries a stable numeric ``code`` and a ``category``.
Stores aggregate recorded errors per category; STATE, ACTION, PAYLOAD and
CONTEXT errors are recoverable, MATCH errors are not.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    STATE = "STATE"
    ACTION = "ACTION"
    PAYLOAD = "PAYLOAD"
    MATCH = "MATCH"
    CONTEXT = "CONTEXT"


RECOVERABLE_CATEGORIES = frozenset(
    {ErrorCategory.STATE, ErrorCategory.ACTION, ErrorCategory.PAYLOAD, ErrorCategory.CONTEXT}
)


class StoreError(Exception):
    """Base class for tagged library errors.

    Keyword details are kept as attributes so callers can inspect them:

        err = ActionNotFoundError(type="tagflux/action/Nope")
        err.type  # "tagflux/action/Nope"
    """

    code: int = 0
    category: ErrorCategory | None = None
    default_message = "store error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.details = details
        for key, value in details.items():
            # class-level fields (code, category, tag) are not overridable
            if not hasattr(type(self), key):
                setattr(self, key, value)
        super().__init__(message or self._format(details))

    @property
    def tag(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return str(self)

    def _format(self, details: dict[str, Any]) -> str:
        if not details:
            return self.default_message
        parts = ", ".join(f"{k}={v!r}" for k, v in details.items())
        return f"{self.default_message} ({parts})"


class StateTransitionError(StoreError):
    code = 1001
    category = ErrorCategory.STATE
    default_message = "transition produced a tag outside the store's tag set"


class MissingHandlerError(StoreError):
    code = 1002
    category = ErrorCategory.ACTION
    default_message = "action descriptor is missing a required handler"


class InvalidActionError(StoreError):
    code = 1003
    category = ErrorCategory.ACTION
    default_message = "not an action descriptor"


class ActionNotFoundError(StoreError):
    code = 1004
    category = ErrorCategory.ACTION
    default_message = "action not registered"


class InvalidPayloadError(StoreError):
    code = 1005
    category = ErrorCategory.PAYLOAD
    default_message = "invalid payload"


class SnapshotNotFoundError(StoreError):
    code = 1006
    category = ErrorCategory.STATE
    default_message = "no snapshot with that name"


class NonExhaustiveMatchError(StoreError):
    code = 1007
    category = ErrorCategory.MATCH
    default_message = "no handler for state tag"


class RequiredPayloadError(StoreError):
    code = 1008
    category = ErrorCategory.PAYLOAD
    default_message = "payload is required"


class PayloadValidationError(StoreError):
    code = 1009
    category = ErrorCategory.PAYLOAD
    default_message = "payload validation failed"


class UnexpectedStateError(StoreError):
    code = 1010
    category = ErrorCategory.STATE
    default_message = "state has an unexpected tag"


class DisposedContextError(StoreError):
    code = 1011
    category = ErrorCategory.CONTEXT
    default_message = "context has been disposed"


_CODE_TO_CATEGORY: dict[int, ErrorCategory] = {
    cls.code: cls.category
    for cls in (
        StateTransitionError,
        MissingHandlerError,
        InvalidActionError,
        ActionNotFoundError,
        InvalidPayloadError,
        SnapshotNotFoundError,
        NonExhaustiveMatchError,
        RequiredPayloadError,
        PayloadValidationError,
        UnexpectedStateError,
        DisposedContextError,
    )
}


def category_of(code: int) -> ErrorCategory | None:
    return _CODE_TO_CATEGORY.get(code)


def is_store_error(error: object) -> bool:
    """True for any object shaped like a tagged error (string tag + int code)."""
    return isinstance(getattr(error, "tag", None), str) and isinstance(
        getattr(error, "code", None), int
    )


def error_info(error: object) -> dict[str, Any] | None:
    """Structured ``{tag, code, message}`` view of a tagged error, else None."""
    if not is_store_error(error):
        return None
    return {"tag": error.tag, "code": error.code, "message": str(error)}


def _code(error_or_code: object) -> int | None:
    if isinstance(error_or_code, int):
        return error_or_code
    if is_store_error(error_or_code):
        return error_or_code.code
    return None


def in_category(error_or_code: object, category: ErrorCategory) -> bool:
    code = _code(error_or_code)
    return code is not None and category_of(code) is category


def is_recoverable(error_or_code: object) -> bool:
    code = _code(error_or_code)
    return code is not None and category_of(code) in RECOVERABLE_CATEGORIES
