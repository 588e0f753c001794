"""
Position hierarchy comparisons.

Authority is a single numeric level per position (1 = highest) compared inside
one department; there is no multi-level org chart to walk.
"""
from typing import NamedTuple, Optional


class Rank(NamedTuple):
    """Department and level of a position, detached from any ORM row."""
    department_id: Optional[str]
    level: Optional[int]


def same_department(a, b) -> bool:
    """True when both positions belong to the same (known) department."""
    return a.department_id is not None and a.department_id == b.department_id


def is_subordinate(a, b) -> bool:
    """True when position `a` has strictly lower authority than `b` in the same department."""
    if not same_department(a, b):
        return False
    if a.level is None or b.level is None:
        return False
    return a.level > b.level
