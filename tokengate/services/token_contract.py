"""
tokengate.services.token_contract — ERC-20 JSON-RPC Client
============================================================

Talks to community token contracts through an Ethereum JSON-RPC node.

* ``balance_of`` is an ``eth_call``.
* ``transfer`` and ``mint`` are ``eth_sendTransaction`` calls sent *from*
  the treasury account.  That account is managed by the signer node; this
  process never sees a private key.

Every call is bounded by the configured timeout.  Transport failures and
timeouts raise :class:`~tokengate.errors.ExternalUnavailable`; a JSON-RPC
error (revert, unknown account, ...) raises :class:`ContractCallFailed`.

Usage::

    gateway = TokenGateway("http://127.0.0.1:8545", sender="0xtreasury", timeout=10)
    token = gateway.contract("0xc94e29b30d5a33556c26e8188b3ce3c6d1003f86")
    tx_hash = token.transfer("0xabc…", 1)
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from tokengate.errors import ExternalUnavailable, TokengateError

logger = logging.getLogger(__name__)

# ERC-20 function selectors
SELECTOR_BALANCE_OF = "70a08231"  # balanceOf(address)
SELECTOR_TRANSFER = "a9059cbb"    # transfer(address,uint256)
SELECTOR_MINT = "a0712d68"        # mint(uint256)

_UINT256_MAX = 2**256 - 1


class ContractCallFailed(TokengateError):
    """The node answered, but with a JSON-RPC error."""


# ---------------------------------------------------------------------------
# ABI helpers
# ---------------------------------------------------------------------------
def encode_address(address: str) -> str:
    return address.lower().removeprefix("0x").rjust(64, "0")


def encode_uint256(value: int) -> str:
    if not 0 <= value <= _UINT256_MAX:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def decode_uint256(data: str | None) -> int:
    if not data or data == "0x":
        return 0
    return int(data, 16)


# ---------------------------------------------------------------------------
# Gateway — one HTTP client shared by every contract
# ---------------------------------------------------------------------------
class TokenGateway:
    """JSON-RPC connection shared by all :class:`TokenContract` handles."""

    def __init__(
        self,
        rpc_url: str,
        *,
        sender: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.sender = sender.lower()
        self._client = httpx.Client(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    def contract(self, address: str) -> TokenContract:
        return TokenContract(self, address)

    def close(self) -> None:
        self._client.close()

    def call(self, method: str, params: list) -> Any:
        """POST one JSON-RPC request and return its ``result``."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise ExternalUnavailable(f"RPC {method} timed out") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalUnavailable(f"RPC {method} failed: {exc}") from exc

        if data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ContractCallFailed(f"RPC {method} error: {message}")
        return data.get("result")


# ---------------------------------------------------------------------------
# TokenContract — one ERC-20 contract
# ---------------------------------------------------------------------------
class TokenContract:
    def __init__(self, gateway: TokenGateway, address: str) -> None:
        self.gateway = gateway
        self.address = address.lower()

    def __repr__(self) -> str:
        return f"<TokenContract {self.address}>"

    def balance_of(self, address: str) -> int:
        data = "0x" + SELECTOR_BALANCE_OF + encode_address(address)
        result = self.gateway.call("eth_call", [{"to": self.address, "data": data}, "latest"])
        return decode_uint256(result)

    def transfer(self, to: str, amount: int) -> str:
        data = "0x" + SELECTOR_TRANSFER + encode_address(to) + encode_uint256(amount)
        tx_hash = self._send(data)
        logger.info("Token %s transfer %d → %s (tx %s)", self.address, amount, to, tx_hash)
        return tx_hash

    def mint(self, amount: int) -> str:
        data = "0x" + SELECTOR_MINT + encode_uint256(amount)
        tx_hash = self._send(data)
        logger.info("Token %s minted %d (tx %s)", self.address, amount, tx_hash)
        return tx_hash

    def _send(self, data: str) -> str:
        tx_hash = self.gateway.call(
            "eth_sendTransaction",
            [{"from": self.gateway.sender, "to": self.address, "data": data}],
        )
        if not tx_hash:
            raise ContractCallFailed(f"No transaction hash returned by {self.address}")
        return tx_hash
