from __future__ import annotations

import dataclasses
from typing import Any, Dict, Type, TypeVar

T = TypeVar("T")

# Tags used in the plain form. A plain value is built only from None, bool,
# int, float, str, list and str-keyed dicts, so it can go straight to JSON.
RECORD_TAG = "$record"
MAP_TAG = "$map"
SET_TAG = "$set"

_RECORD_TYPES: Dict[str, type] = {}


def record(cls: Type[T]) -> Type[T]:
    """Register a dataclass so snapshots can rebuild it by name."""
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"{cls!r} is not a dataclass")
    _RECORD_TYPES[cls.__name__] = cls
    return cls


def _ordered(items: Any) -> list:
    # Sets have no order; sort when the members allow it so captures are stable.
    try:
        return sorted(items)
    except TypeError:
        return list(items)


def to_plain(value: Any, keep_opaque: bool = True) -> Any:
    """
    Convert live state into plain structures.

    - registered dataclasses -> {"$record": name, "fields": {...}}
    - dicts -> {"$map": [[key, value], ...]} (insertion order kept)
    - sets -> {"$set": [...]}
    - lists/tuples -> lists

    Anything else (decoder handles, file objects) is opaque: it is carried by
    reference when `keep_opaque` is true and replaced by None otherwise.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        name = type(value).__name__
        if _RECORD_TYPES.get(name) is type(value):
            return {
                RECORD_TAG: name,
                "fields": {
                    f.name: to_plain(getattr(value, f.name), keep_opaque)
                    for f in dataclasses.fields(value)
                },
            }
    elif isinstance(value, dict):
        return {MAP_TAG: [[to_plain(k, keep_opaque), to_plain(v, keep_opaque)] for k, v in value.items()]}
    elif isinstance(value, (set, frozenset)):
        return {SET_TAG: [to_plain(x, keep_opaque) for x in _ordered(value)]}
    elif isinstance(value, (list, tuple)):
        return [to_plain(x, keep_opaque) for x in value]
    return value if keep_opaque else None


def from_plain(value: Any) -> Any:
    """Inverse of `to_plain`: rebuild dataclasses, dicts and sets."""
    if isinstance(value, list):
        return [from_plain(x) for x in value]
    if not isinstance(value, dict):
        return value

    if RECORD_TAG in value:
        cls = _RECORD_TYPES.get(str(value[RECORD_TAG]))
        fields = {str(k): from_plain(v) for k, v in (value.get("fields") or {}).items()}
        if cls is None:
            return fields
        known = {f.name for f in dataclasses.fields(cls) if f.init}
        return cls(**{k: v for k, v in fields.items() if k in known})
    if MAP_TAG in value:
        return {_hashable(from_plain(k)): from_plain(v) for k, v in value[MAP_TAG]}
    if SET_TAG in value:
        return {_hashable(from_plain(x)) for x in value[SET_TAG]}
    return {k: from_plain(v) for k, v in value.items()}


def _hashable(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_hashable(x) for x in value)
    return value
