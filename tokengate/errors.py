"""
tokengate.errors — Domain Error Taxonomy
==========================================

Services raise these; :mod:`tokengate.api.main` maps them onto HTTP
responses.

* :class:`NotFound` — referenced post / community / account / challenge
  is absent.  404, never retried.
* :class:`ActionRejected` — a business rule refused the action (not a
  member, balance too low to vote, ...).  403, never retried.
* :class:`InsufficientFunds` — a debit would take a balance below zero.
* :class:`DuplicateIgnored` — idempotent no-op (re-join, re-unlock,
  re-applied reward).  Callers catch it and report success.
* :class:`RewardApplicationFailed` — the primary action was recorded but
  its reward could not be applied.  Only the reward step may be retried.
* :class:`ExternalUnavailable` — the chain RPC / profile directory could
  not be reached or timed out.
"""

from __future__ import annotations

from typing import Any


class TokengateError(Exception):
    """Base class for every domain error."""


class NotFound(TokengateError):
    def __init__(self, kind: str, key: Any) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class ActionRejected(TokengateError):
    """A business rule refused the action."""


class InsufficientFunds(ActionRejected):
    def __init__(self, address: str, required: int, available: int | None = None) -> None:
        msg = f"Insufficient tokens for {address}: need {required}"
        if available is not None:
            msg += f", have {available}"
        super().__init__(msg)
        self.address = address
        self.required = required
        self.available = available


class DuplicateIgnored(TokengateError):
    """The write already happened; treat as success."""


class ExternalUnavailable(TokengateError):
    """An external collaborator (RPC node, profile directory) failed."""


class RewardApplicationFailed(TokengateError):
    """The action was recorded but applying its reward failed.

    ``action`` holds a JSON-safe description of the recorded action so the
    client can retry just the reward step.
    """

    def __init__(self, message: str, *, action: dict | None = None) -> None:
        super().__init__(message)
        self.action = action or {}
