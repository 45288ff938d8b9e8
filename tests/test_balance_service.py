"""
tests/test_balance_service.py — Balance Store & Ledger Tests
==============================================================
Atomic credit/debit arithmetic, the InsufficientFunds guard, ledger
reference uniqueness and community-scoped balances.

Everything runs inside one session; nothing here commits.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from tokengate.database.models import Community, Membership, TokenTransaction, TransactionKind
from tokengate.errors import DuplicateIgnored, InsufficientFunds, NotFound
from tokengate.services import account_service, balance_service


@pytest.fixture
def alice(db_session):
    account, _ = account_service.get_or_create_account(db_session, "0xA11CE")
    db_session.flush()
    return account


@pytest.fixture
def bob(db_session):
    account, _ = account_service.get_or_create_account(db_session, "0xB0B")
    db_session.flush()
    return account


@pytest.fixture
def community(db_session, alice):
    community = Community(
        name="Builders",
        token_name="Builder Token",
        token_symbol="BLD",
        token_contract="offchain:test",
        initial_member_balance=1000,
        creator_id=alice.id,
    )
    db_session.add(community)
    db_session.flush()
    return community


class TestCreditDebit:
    def test_new_account_starts_at_zero(self, db_session, alice):
        assert balance_service.get_balance(db_session, alice.address) == 0

    def test_n_credits_and_m_debits_sum_exactly(self, db_session, alice):
        for _ in range(7):
            balance_service.credit(db_session, alice.address, 25)
        for _ in range(3):
            balance_service.debit(db_session, alice.address, 40)
        assert balance_service.get_balance(db_session, alice.address) == 7 * 25 - 3 * 40

    def test_credit_returns_new_balance(self, db_session, alice):
        assert balance_service.credit(db_session, alice.address, 5) == 5
        assert balance_service.credit(db_session, alice.address, 6) == 11

    def test_large_amounts_stay_exact(self, db_session, alice):
        big = 10**15 + 1
        balance_service.credit(db_session, alice.address, big)
        balance_service.credit(db_session, alice.address, 1)
        assert balance_service.get_balance(db_session, alice.address) == big + 1

    def test_debit_below_zero_raises_and_changes_nothing(self, db_session, alice):
        balance_service.credit(db_session, alice.address, 10)
        with pytest.raises(InsufficientFunds) as exc_info:
            balance_service.debit(db_session, alice.address, 11)
        assert exc_info.value.available == 10
        assert balance_service.get_balance(db_session, alice.address) == 10

    def test_debit_to_exactly_zero_is_allowed(self, db_session, alice):
        balance_service.credit(db_session, alice.address, 10)
        assert balance_service.debit(db_session, alice.address, 10) == 0

    def test_non_positive_amount_rejected(self, db_session, alice):
        with pytest.raises(ValueError):
            balance_service.credit(db_session, alice.address, 0)
        with pytest.raises(ValueError):
            balance_service.debit(db_session, alice.address, -5)

    def test_unknown_account_raises_not_found(self, db_session):
        with pytest.raises(NotFound):
            balance_service.credit(db_session, "0xdead", 1)
        with pytest.raises(NotFound):
            balance_service.get_balance(db_session, "0xdead")


class TestCommunityBalances:
    def test_credit_lands_in_membership_only(self, db_session, alice, community):
        db_session.add(Membership(account_id=alice.id, community_id=community.id, balance=1000))
        db_session.flush()

        balance_service.credit(db_session, alice.address, 1, community_id=community.id)

        assert balance_service.get_balance(db_session, alice.address, community.id) == 1001
        assert balance_service.get_balance(db_session, alice.address) == 0

    def test_non_member_raises_not_found(self, db_session, bob, community):
        with pytest.raises(NotFound):
            balance_service.credit(db_session, bob.address, 1, community_id=community.id)

    def test_community_debit_guard(self, db_session, alice, community):
        db_session.add(Membership(account_id=alice.id, community_id=community.id, balance=3))
        db_session.flush()
        with pytest.raises(InsufficientFunds):
            balance_service.debit(db_session, alice.address, 4, community_id=community.id)


class TestLedger:
    def test_record_transaction_appends_row(self, db_session, alice):
        row = balance_service.record_transaction(
            db_session,
            from_address="0x0",
            to_address=alice.address,
            amount=1,
            kind=TransactionKind.REWARD,
            reference="post:1",
        )
        assert row.id is not None
        assert row.kind == "reward"
        assert row.amount == 1

    def test_duplicate_reference_is_ignored(self, db_session, alice):
        kwargs = dict(
            from_address="0x0",
            to_address=alice.address,
            amount=1,
            kind=TransactionKind.REWARD,
            reference="post:7",
        )
        balance_service.record_transaction(db_session, **kwargs)
        with pytest.raises(DuplicateIgnored):
            balance_service.record_transaction(db_session, **kwargs)

        # The session is still usable and holds exactly one row.
        count = db_session.scalar(
            select(func.count()).select_from(TokenTransaction)
            .where(TokenTransaction.reference == "post:7")
        )
        assert count == 1

    def test_transfer_moves_tokens_with_one_row(self, db_session, alice, bob):
        balance_service.credit(db_session, alice.address, 100)

        row = balance_service.transfer(
            db_session,
            from_address=alice.address,
            to_address=bob.address,
            amount=30,
            reference="transfer:1",
        )

        assert row.kind == TransactionKind.TRANSFER.value
        assert balance_service.get_balance(db_session, alice.address) == 70
        assert balance_service.get_balance(db_session, bob.address) == 30

    def test_transfer_without_funds_fails(self, db_session, alice, bob):
        with pytest.raises(InsufficientFunds):
            balance_service.transfer(
                db_session,
                from_address=alice.address,
                to_address=bob.address,
                amount=1,
                reference="transfer:2",
            )
        assert balance_service.get_balance(db_session, bob.address) == 0

    def test_transfer_to_self_rejected(self, db_session, alice):
        with pytest.raises(ValueError):
            balance_service.transfer(
                db_session,
                from_address=alice.address,
                to_address=alice.address,
                amount=1,
                reference="transfer:3",
            )
