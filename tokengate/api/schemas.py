"""
tokengate.api.schemas — Shared request field types
=====================================================

Token amounts travel as decimal strings (``"1000"``) so values above 2^53
survive JSON clients; plain integers are accepted too.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import HTTPException, status
from pydantic import AfterValidator, BeforeValidator

from tokengate.constants import normalize_address


def _parse_amount(value):
    if isinstance(value, bool):
        raise ValueError("Token amount must be an integer")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip().isdigit():
        amount = int(value.strip())
    else:
        raise ValueError("Token amount must be a non-negative integer string")
    if amount < 0:
        raise ValueError("Token amount must be >= 0")
    return amount


Address = Annotated[str, AfterValidator(normalize_address)]
TokenAmountField = Annotated[int, BeforeValidator(_parse_amount)]


def parse_address(address: str) -> str:
    """Normalize a path/query address or answer 422."""
    try:
        return normalize_address(address)
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
