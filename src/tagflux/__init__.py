"""tagflux: tagged-state stores with actions, derived values and scoped contexts."""

from importlib.metadata import version as _version

__version__ = _version("tagflux")

from tagflux.action import ACTION_TYPE_PREFIX, Action, AsyncAction, action_group
from tagflux.config import StoreConfig
from tagflux.context import ContextNode, create_context
from tagflux.derived import DerivedNode, derive
from tagflux.errors import (
    ActionNotFoundError,
    DisposedContextError,
    ErrorCategory,
    InvalidActionError,
    InvalidPayloadError,
    MissingHandlerError,
    NonExhaustiveMatchError,
    PayloadValidationError,
    RequiredPayloadError,
    SnapshotNotFoundError,
    StateTransitionError,
    StoreError,
    UnexpectedStateError,
    category_of,
    error_info,
    in_category,
    is_recoverable,
    is_store_error,
)
from tagflux.guards import ensure_state, match, require_payload, validate_payload
from tagflux.pipeline import InterceptorContext
from tagflux.selectors import Selection, combine_selectors, deep_equal, memoize, pluck, select
from tagflux.state import tag_of
from tagflux.store import ErrorRecord, Snapshot, Store, create_store

__all__ = [
    "ACTION_TYPE_PREFIX",
    "Action",
    "AsyncAction",
    "action_group",
    "StoreConfig",
    "Store",
    "create_store",
    "ErrorRecord",
    "Snapshot",
    "InterceptorContext",
    "DerivedNode",
    "derive",
    "ContextNode",
    "create_context",
    "deep_equal",
    "select",
    "Selection",
    "pluck",
    "combine_selectors",
    "memoize",
    "tag_of",
    "ensure_state",
    "match",
    "require_payload",
    "validate_payload",
    "ErrorCategory",
    "StoreError",
    "StateTransitionError",
    "UnexpectedStateError",
    "ActionNotFoundError",
    "MissingHandlerError",
    "InvalidActionError",
    "InvalidPayloadError",
    "RequiredPayloadError",
    "PayloadValidationError",
    "SnapshotNotFoundError",
    "NonExhaustiveMatchError",
    "DisposedContextError",
    "category_of",
    "error_info",
    "in_category",
    "is_recoverable",
    "is_store_error",
]
