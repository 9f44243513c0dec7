"""Template tags and array selection shared by the sub-actions."""

import random
from typing import TypeVar

from ..domains.phrasing import replace_tags
from .models import ActionUser

T = TypeVar("T")


def user_tags(user: ActionUser) -> dict[str, str]:
    return {
        "userLogin": user.login,
        "userName": user.name,
        "userInput": user.input,
        "userBits": str(user.bits),
        "userBitsTotal": str(user.bits_total),
        "userColor": user.color,
    }


def render(template: str, user: ActionUser) -> str:
    """Fill ``%userLogin``-style tags from the invoking user."""
    return replace_tags(template, user_tags(user))


def pick(value: T | list[T] | None, index: int | None = None, rng: random.Random | None = None) -> T | None:
    """Pick one entry from an array-valued config.

    With an index the same slot is used by every sub-action of one firing; an
    index past the end picks the last entry. Without one the pick is random.
    Scalars are returned as-is.
    """
    if not isinstance(value, list):
        return value
    if not value:
        return None
    if index is None:
        return (rng or random).choice(value)
    return value[min(max(index, 0), len(value) - 1)]


def as_list(value: T | list[T] | None) -> list[T]:
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]
