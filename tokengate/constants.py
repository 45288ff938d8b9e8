"""
tokengate.constants — Shared Constants & Helpers
==================================================

Single source of truth for the system sender address, the gated-content
placeholder and the leveling formula.  Import from here instead of
duplicating in services and routes.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Ledger identities
# ---------------------------------------------------------------------------
SYSTEM_ADDRESS = "0x0"
"""Sender recorded on every system-issued reward, mint and bonus."""

LOCKED_CONTENT_PLACEHOLDER = "\U0001f512 Token-gated content"  # 🔒


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
XP_PER_LEVEL = 1000


def xp_for_level(level: int, xp_per_level: int = XP_PER_LEVEL) -> int:
    """Total XP needed to advance past *level*.

    Linear: reaching level ``n + 1`` needs ``n * xp_per_level`` XP.
    """
    return level * xp_per_level


def levels_gained(level: int, xp: int, xp_per_level: int = XP_PER_LEVEL) -> int:
    """How many level-ups a cumulative *xp* total buys from *level*."""
    if xp_per_level <= 0:
        return 0
    gained = 0
    while xp >= xp_for_level(level + gained, xp_per_level):
        gained += 1
    return gained


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------
_ADDRESS_REGEX = re.compile(r"^0x[0-9a-fA-F]+$")


def normalize_address(address: str) -> str:
    """Lower-case a wallet address and check it looks like hex.

    Raises
    ------
    ValueError
        If *address* is not a ``0x``-prefixed hex string.
    """
    value = (address or "").strip()
    if not _ADDRESS_REGEX.match(value):
        raise ValueError(f"Not a wallet address: {address!r}")
    return value.lower()
