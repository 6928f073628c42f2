"""Unread-count badge: what it shows and how wide it is."""

from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = ["BadgeStyle", "badge_text", "badge_width"]

_NARROW_WIDTH = 16
_WIDE_WIDTH = 22
_CAP = 99


class BadgeStyle(Enum):
    """How counts above 99 are shown."""

    SHOW_99 = "show_99"
    SHOW_DOTS = "show_dots"


def badge_text(num: int, style: BadgeStyle = BadgeStyle.SHOW_99) -> Optional[str]:
    """Return the badge's label for ``num``, or None when the badge is hidden."""
    if num == 0:
        return None
    if num > _CAP:
        return str(_CAP) if style is BadgeStyle.SHOW_99 else "..."
    return str(num)


def badge_width(num: int) -> int:
    """Return the badge's pixel width for ``num``; 0 when it is hidden."""
    if num == 0:
        return 0
    return _NARROW_WIDTH if num < 10 else _WIDE_WIDTH