"""Visibility classification from raw capability bitmasks."""

from __future__ import annotations

from enum import Enum
from typing import Any

from showhidden.policy import as_bitmask


class Visibility(Enum):
    """Whether an item is visible under the host's real rules."""

    VISIBLE = "visible"
    HIDDEN = "hidden"


def classify(raw_bitmask: Any, target_bit: int) -> Visibility:
    """Classify an item from its unoverridden bitmask.

    The bitmask must come from a path that bypasses the override, otherwise
    every item reads as visible.

    Args:
        raw_bitmask: Raw capability bitmask (int-like or decimal string)
        target_bit: Capability bit that grants visibility

    Returns:
        HIDDEN iff ``raw_bitmask & target_bit == 0``. Values that are not
        integer-like count as no bits set.
    """
    value = as_bitmask(raw_bitmask) or 0
    return Visibility.VISIBLE if value & target_bit else Visibility.HIDDEN


def is_hidden(raw_bitmask: Any, target_bit: int) -> bool:
    """Shortcut for ``classify(...) is Visibility.HIDDEN``."""
    return classify(raw_bitmask, target_bit) is Visibility.HIDDEN
