"""Two-way JSON merge patches (RFC 7386 semantics).

Only fields that differ between *original* and *modified* end up in the
patch, so applying it leaves concurrent edits to unrelated fields intact.
Nested mappings are diffed recursively; a key removed in *modified* is
sent as ``None``.
"""

from __future__ import annotations

import copy
from typing import Any


def create_merge_patch(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    patch: dict[str, Any] = {}
    for key, value in modified.items():
        if key not in original:
            patch[key] = copy.deepcopy(value)
            continue
        current = original[key]
        if isinstance(value, dict) and isinstance(current, dict):
            nested = create_merge_patch(current, value)
            if nested:
                patch[key] = nested
        elif current != value:
            patch[key] = copy.deepcopy(value)
    for key in original:
        if key not in modified:
            patch[key] = None
    return patch


def apply_merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *target* with *patch* applied."""
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict):
            current = result.get(key)
            result[key] = apply_merge_patch(current if isinstance(current, dict) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result
