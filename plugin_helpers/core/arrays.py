"""Helpers for plain keyed data (decoded JSON, option arrays, settings)."""

from collections.abc import Mapping
from typing import Any, Dict, Iterable


def is_one_level_array(data: Iterable[Any]) -> bool:
    """Return True when no value in ``data`` is itself a container.

    Mappings are checked by value, sequences by item. Empty input is
    one-level.
    """
    values = data.values() if isinstance(data, Mapping) else data
    for value in values:
        if isinstance(value, (Mapping, list, tuple)):
            return False
    return True


def array_merge_deep(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``overlay`` into a copy of ``base``.

    When both sides hold a mapping under the same key the two are merged;
    any other overlay value replaces the base value. Lists are treated as
    leaves. Neither argument is modified.
    """
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = array_merge_deep(current, value)
        else:
            merged[key] = value
    return merged


def remove_null_values(data: Mapping[str, Any]) -> Dict[str, Any]:
    # Top level only
    return {key: value for key, value in data.items() if value is not None}
