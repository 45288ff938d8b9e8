"""
tests/test_config.py — YAML Configuration Loader Tests
========================================================
"""

from __future__ import annotations

import textwrap

import pytest

from tokengate.config import load_config
from tokengate.constants import SYSTEM_ADDRESS


def _write(tmp_path, body: str):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_minimal_file_runs_off_chain(self, tmp_path):
        cfg = load_config(_write(tmp_path, "platform_name: Tokengate Dev\n"))
        assert cfg.platform_name == "Tokengate Dev"
        assert cfg.api_port == 8000
        assert cfg.system_address == SYSTEM_ADDRESS
        assert cfg.chain_enabled is False
        assert cfg.profile_directory_url is None

    def test_chain_block(self, tmp_path):
        cfg = load_config(_write(tmp_path, """
            platform_name: Tokengate
            chain:
              rpc_url: http://127.0.0.1:8545
              treasury_address: "0xABCDEF"
              platform_token_address: "0xC0FFEE"
              timeout_seconds: 4
              settle_rewards: true
        """))
        assert cfg.chain_enabled is True
        assert cfg.treasury_address == "0xabcdef"
        assert cfg.platform_token_address == "0xc0ffee"
        assert cfg.rpc_timeout_seconds == 4.0
        assert cfg.settle_rewards_on_chain is True

    def test_rpc_without_treasury_is_not_enabled(self, tmp_path):
        cfg = load_config(_write(tmp_path, """
            platform_name: Tokengate
            chain:
              rpc_url: http://127.0.0.1:8545
        """))
        assert cfg.chain_enabled is False

    def test_profile_directory_block(self, tmp_path):
        cfg = load_config(_write(tmp_path, """
            platform_name: Tokengate
            profile_directory:
              url: https://profiles.example
              timeout_seconds: 1.5
        """))
        assert cfg.profile_directory_url == "https://profiles.example"
        assert cfg.profile_timeout_seconds == 1.5

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_platform_name_raises(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "api_port: 9000\n"))

    def test_bad_treasury_address_raises(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, """
                platform_name: Tokengate
                chain:
                  rpc_url: http://127.0.0.1:8545
                  treasury_address: treasury
            """))
