"""
tests/test_community_service.py — Community Creation Tests
============================================================
Off-chain token ids, on-chain mints recorded in the ledger, and the rule
that a failed mint creates nothing.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import make_community, make_gateway, rpc_error, rpc_result, rpc_timeout
from tokengate.database.models import Community, TokenTransaction
from tokengate.errors import ActionRejected, ExternalUnavailable
from tokengate.services import community_service, membership_service, settings_service
from tokengate.services.token_contract import ContractCallFailed

TOKEN = "0xC94E29B30D5A33556C26E8188B3CE3C6D1003F86"


@pytest.fixture
def engine(db_engine):
    return db_engine


def _create(engine, config, gateway=None, **kwargs):
    fields = dict(
        creator_address="0xC0",
        name="Builders",
        token_name="Builder Token",
        token_symbol="bld",
    )
    fields.update(kwargs)
    return community_service.create_community(engine, config, gateway, **fields)


def _community_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(Community))


class TestOffChain:
    def test_creates_community_and_enrolls_creator(self, engine, config):
        data = _create(engine, config, description="we build")

        assert data["name"] == "Builders"
        assert data["token_symbol"] == "BLD"
        assert data["token_contract"].startswith("offchain:")
        assert data["member_count"] == 1
        assert data["initial_member_balance"] == "1000"

        with Session(engine) as session:
            memberships = membership_service.list_memberships(session, data["creator_id"])
            assert [m.community_id for m in memberships] == [data["id"]]
            assert memberships[0].balance == 1000

    def test_explicit_initial_balance(self, engine, config):
        data = _create(engine, config, initial_member_balance=42)
        assert data["initial_member_balance"] == "42"

    def test_default_balance_follows_setting(self, engine, config):
        settings_service.upsert_setting(engine, key="economy.initial_member_balance", value=10)
        assert _create(engine, config)["initial_member_balance"] == "10"

    def test_duplicate_name_rejected(self, engine, config):
        _create(engine, config)
        with pytest.raises(ActionRejected, match="already exists"):
            _create(engine, config, creator_address="0xD0")
        assert _community_count(engine) == 1

    @pytest.mark.parametrize("overrides", [
        {"name": "ab"},
        {"token_name": "  "},
        {"token_symbol": "TOOLONG"},
        {"required_token_amount": -1},
    ])
    def test_invalid_fields_rejected(self, engine, config, overrides):
        with pytest.raises(ActionRejected):
            _create(engine, config, **overrides)
        assert _community_count(engine) == 0

    def test_no_mint_row_without_chain(self, engine, config):
        _create(engine, config, initial_supply=1000)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(TokenTransaction)) == 0

    def test_creator_unlocks_community_builder(self, seeded_achievements, config):
        data = _create(seeded_achievements, config)
        assert "Community Builder" in [a["name"] for a in data["achievements_unlocked"]]


class TestOnChain:
    def test_mint_is_recorded_with_tx_hash(self, engine, config):
        gateway = make_gateway(rpc_result("0xm1n7"), sender="0x7E45")

        data = _create(engine, config, gateway, token_contract=TOKEN, initial_supply=10**15)

        assert data["token_contract"] == TOKEN.lower()
        with Session(engine) as session:
            row = session.scalar(select(TokenTransaction))
        assert row.kind == "mint"
        assert row.tx_hash == "0xm1n7"
        assert row.to_address == "0x7e45"
        assert row.amount == 10**15
        assert row.reference == f"mint:community:{data['id']}"

    def test_zero_supply_skips_mint(self, engine, config):
        def handler(request):
            raise AssertionError("no RPC expected")

        data = _create(engine, config, make_gateway(handler), token_contract=TOKEN)
        assert data["token_contract"] == TOKEN.lower()

    def test_contract_required_with_chain(self, engine, config):
        with pytest.raises(ActionRejected, match="token_contract"):
            _create(engine, config, make_gateway(rpc_result("0x1")), initial_supply=5)

    def test_mint_timeout_creates_nothing(self, engine, config):
        with pytest.raises(ExternalUnavailable):
            _create(engine, config, make_gateway(rpc_timeout), token_contract=TOKEN, initial_supply=5)
        assert _community_count(engine) == 0

    def test_mint_revert_creates_nothing(self, engine, config):
        with pytest.raises(ContractCallFailed):
            _create(engine, config, make_gateway(rpc_error()), token_contract=TOKEN, initial_supply=5)
        assert _community_count(engine) == 0

    def test_contract_reuse_rejected(self, engine, config):
        gateway = make_gateway(rpc_result("0x1"))
        _create(engine, config, gateway, token_contract=TOKEN)
        with pytest.raises(ActionRejected, match="already in use"):
            _create(engine, config, gateway, name="Other", token_contract=TOKEN)


class TestListing:
    def test_list_includes_member_counts(self, engine):
        first = make_community(engine, "0xc0", "Alpha", members=("0xaa", "0xbb"))
        second = make_community(engine, "0xc0", "Beta")
        with Session(engine) as session:
            listing = community_service.list_communities(session)
        counts = {c["id"]: c["member_count"] for c in listing}
        assert counts == {first: 3, second: 1}
