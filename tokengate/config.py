"""
tokengate.config — YAML Configuration Loader
==============================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(platform identity, chain RPC endpoint, treasury account, external
timeouts).  Gameplay tuning (reward amounts, vote thresholds, level-up
bonus, gating scope) lives in the ``settings`` database table.

Usage::

    from tokengate.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.platform_name)     # "Tokengate Dev"
    print(cfg.chain_rpc_url)     # "http://127.0.0.1:8545" or None
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from tokengate.constants import SYSTEM_ADDRESS, normalize_address


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TokengateConfig:
    """Immutable configuration loaded from ``config.yaml``.

    When ``chain_rpc_url`` is unset the ledger runs purely off-chain:
    rewards are recorded with synthesized references and community tokens
    get an off-chain contract reference.
    """

    # Identity
    platform_name: str

    # API
    api_port: int = 8000

    # Ledger
    system_address: str = SYSTEM_ADDRESS

    # Chain (all optional)
    chain_rpc_url: str | None = None
    treasury_address: str | None = None       # signer-managed sender account
    platform_token_address: str | None = None  # token backing global balances
    rpc_timeout_seconds: float = 10.0
    settle_rewards_on_chain: bool = False

    # Profile directory (optional)
    profile_directory_url: str | None = None
    profile_timeout_seconds: float = 3.0

    @property
    def chain_enabled(self) -> bool:
        return bool(self.chain_rpc_url and self.treasury_address)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> TokengateConfig:
    """Read *path* and return a :class:`TokengateConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    chain: dict = raw.get("chain") or {}
    profiles: dict = raw.get("profile_directory") or {}

    return TokengateConfig(
        platform_name=raw["platform_name"],
        api_port=int(raw.get("api_port", 8000)),
        system_address=raw.get("system_address", SYSTEM_ADDRESS),
        chain_rpc_url=chain.get("rpc_url") or None,
        treasury_address=_optional_address(chain.get("treasury_address")),
        platform_token_address=_optional_address(chain.get("platform_token_address")),
        rpc_timeout_seconds=float(chain.get("timeout_seconds", 10.0)),
        settle_rewards_on_chain=bool(chain.get("settle_rewards", False)),
        profile_directory_url=profiles.get("url") or None,
        profile_timeout_seconds=float(profiles.get("timeout_seconds", 3.0)),
    )


def _optional_address(value: str | None) -> str | None:
    return normalize_address(value) if value else None
