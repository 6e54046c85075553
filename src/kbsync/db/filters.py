"""JSON containment matching for metadata filters.

Semantics follow PostgreSQL's ``jsonb @>`` operator:

- an object contains another if every key of the pattern is present and its
  value is contained;
- an array contains another if every pattern element is contained in some
  target element; an array also contains a bare scalar it holds;
- scalars match by type and value (``true`` never matches ``1``).
"""

from __future__ import annotations

import json
from typing import Any


def contains(target: Any, pattern: Any) -> bool:
    """Return True if *target* contains *pattern*."""
    if isinstance(pattern, dict):
        if not isinstance(target, dict):
            return False
        return all(k in target and contains(target[k], v) for k, v in pattern.items())

    if isinstance(pattern, list):
        if not isinstance(target, list):
            return False
        return all(any(contains(t, p) for t in target) for p in pattern)

    if isinstance(target, list):
        return any(_scalar_equal(t, pattern) for t in target if not isinstance(t, (dict, list)))

    return _scalar_equal(target, pattern)


def _scalar_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


def json_contains(target_json: str | None, pattern_json: str | None) -> int:
    """SQLite scalar function: ``json_contains(metadata, filter)`` → 1 / 0.

    A NULL or empty filter matches every row; unparsable metadata matches none.
    """
    if not pattern_json:
        return 1
    if target_json is None:
        return 0
    try:
        target = json.loads(target_json)
        pattern = json.loads(pattern_json)
    except (TypeError, ValueError):
        return 0
    return 1 if contains(target, pattern) else 0
