"""
tests/test_reward_engine.py — Reward Calculation Pipeline Tests
=================================================================
Pure calculation: ActionEvent → RewardResult, and the level-up formula.
"""

from __future__ import annotations

import pytest

from tokengate.constants import levels_gained, xp_for_level
from tokengate.database.models import TransactionKind
from tokengate.engine.events import ActionEvent, ActionType
from tokengate.engine.reward import RewardPolicy, calculate_level_up, calculate_reward


def _event(action_type=ActionType.POST_CREATED, **kwargs) -> ActionEvent:
    defaults = dict(
        action_type=action_type,
        actor_address="0xaa",
        beneficiary_address="0xaa",
        entity_id=12,
    )
    defaults.update(kwargs)
    return ActionEvent(**defaults)


class TestReferences:
    def test_post_reference(self):
        assert _event().reference == "post:12"

    def test_comment_reference(self):
        assert _event(ActionType.COMMENT_CREATED, entity_id=3).reference == "comment:3"

    def test_vote_reference_is_per_voter(self):
        event = _event(ActionType.VOTE_CAST, actor_address="0xbb")
        assert event.reference == "vote:12:0xbb"

    def test_challenge_reference_is_per_participant(self):
        event = _event(ActionType.CHALLENGE_COMPLETED, entity_id=4, beneficiary_address="0xcc")
        assert event.reference == "challenge:4:0xcc"


class TestCalculateReward:
    def test_post_earns_flat_policy_amount(self):
        result = calculate_reward(_event(), RewardPolicy(post_created=3))
        assert result.amount == 3
        assert result.kind is TransactionKind.REWARD
        assert result.beneficiary_address == "0xaa"
        assert result.reference == "post:12"

    def test_community_is_carried_through(self):
        result = calculate_reward(_event(community_id=9), RewardPolicy())
        assert result.community_id == 9

    def test_first_vote_pays_the_author(self):
        event = _event(ActionType.VOTE_CAST, actor_address="0xbb", beneficiary_address="0xaa")
        result = calculate_reward(event, RewardPolicy(first_vote_received=2))
        assert result.beneficiary_address == "0xaa"
        assert result.amount == 2

    def test_revote_earns_nothing(self):
        event = _event(ActionType.VOTE_CAST, actor_address="0xbb", first_time=False)
        assert calculate_reward(event, RewardPolicy()) is None

    def test_zero_policy_amount_earns_nothing(self):
        assert calculate_reward(_event(), RewardPolicy(post_created=0)) is None

    def test_challenge_uses_its_own_amount(self):
        event = _event(ActionType.CHALLENGE_COMPLETED, amount=250)
        result = calculate_reward(event, RewardPolicy())
        assert result.amount == 250
        assert result.kind is TransactionKind.CHALLENGE_COMPLETION

    def test_challenge_without_reward_earns_nothing(self):
        event = _event(ActionType.CHALLENGE_COMPLETED, amount=0)
        assert calculate_reward(event, RewardPolicy()) is None

    def test_as_dict_serializes_amount_as_string(self):
        result = calculate_reward(_event(), RewardPolicy(post_created=10**20))
        assert result.as_dict()["amount"] == str(10**20)


class TestLevelUp:
    def test_threshold_is_level_times_xp_per_level(self):
        assert xp_for_level(1) == 1000
        assert xp_for_level(3, 200) == 600

    @pytest.mark.parametrize("level, xp, expected", [
        (1, 999, 0),
        (1, 1000, 1),
        (1, 1999, 1),
        (1, 2000, 2),
        (2, 1500, 0),
    ])
    def test_levels_gained(self, level, xp, expected):
        assert levels_gained(level, xp) == expected

    def test_no_level_up_below_threshold(self):
        result = calculate_level_up(1, 900, 50, bonus_per_level=50)
        assert not result.leveled_up
        assert result.xp == 950
        assert result.bonus == 0

    def test_single_level_up_pays_bonus(self):
        result = calculate_level_up(1, 900, 100, bonus_per_level=50)
        assert result.new_level == 2
        assert result.bonus == 50

    def test_multiple_level_ups_pay_per_level(self):
        result = calculate_level_up(1, 0, 2000, bonus_per_level=50)
        assert result.new_level == 3
        assert result.bonus == 100

    def test_negative_delta_is_ignored(self):
        result = calculate_level_up(2, 1500, -500, bonus_per_level=50)
        assert result.xp == 1500
        assert not result.leveled_up

    def test_zero_xp_per_level_never_levels(self):
        assert levels_gained(1, 10**6, 0) == 0
