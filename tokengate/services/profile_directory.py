"""
tokengate.services.profile_directory — Address → Profile Lookups
==================================================================

Resolves a wallet address to a human-readable handle and avatar through
an external social-graph directory.  Display only: every failure degrades
to showing the raw address, so nothing here ever raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Profile:
    address: str
    handle: str | None = None
    avatar_url: str | None = None

    @property
    def display_name(self) -> str:
        return self.handle or self.address


class ProfileDirectory:
    """HTTP client for ``GET {base_url}/profiles/{address}``.

    Expected response: ``{"handle": "...", "avatar_url": "..."}``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 3.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def resolve(self, address: str) -> Profile:
        try:
            resp = self._client.get(f"{self.base_url}/profiles/{address}")
        except httpx.HTTPError as exc:
            logger.warning("Profile lookup for %s failed: %s", address, exc)
            return Profile(address=address)

        if resp.status_code != 200:
            return Profile(address=address)
        try:
            body = resp.json()
        except ValueError:
            logger.warning("Profile directory returned non-JSON for %s", address)
            return Profile(address=address)

        return Profile(
            address=address,
            handle=body.get("handle") or None,
            avatar_url=body.get("avatar_url") or None,
        )


def resolve_display_name(
    directory: ProfileDirectory | None, address: str, handle: str | None,
) -> str:
    """Stored handle first, then the directory, then the raw address."""
    if handle:
        return handle
    if directory is None:
        return address
    return directory.resolve(address).display_name
