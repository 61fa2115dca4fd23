"""Tagged state — reading the discriminant of an opaque state value.

A state is any value carrying a string discriminant: the attribute ``tag``
(dataclasses, named tuples, plain objects) or the key ``"tag"`` when the
state is a Mapping. Stores never look further into a state than this.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

TAG_FIELD = "tag"


def tag_of(state: object) -> str:
    """Return the discriminant of a state value."""
    if isinstance(state, Mapping):
        tag = state.get(TAG_FIELD)
    else:
        tag = getattr(state, TAG_FIELD, None)
    if not isinstance(tag, str):
        raise TypeError(f"{type(state).__name__} has no string {TAG_FIELD!r} discriminant")
    return tag


def variant_tags(initial: object, variants: Iterable[object] | None = None) -> frozenset[str]:
    """The fixed set of tags a store accepts.

    ``variants`` may hold tag strings or variant classes/instances exposing
    ``tag``. The initial state's own tag is always included.
    """
    tags = {tag_of(initial)}
    for variant in variants or ():
        tags.add(variant if isinstance(variant, str) else tag_of(variant))
    return frozenset(tags)
