"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the public and admin API routes using the FastAPI
TestClient against the in-memory database.

These tests verify:
- Auth guards on admin endpoints
- Request validation and domain-error → HTTP mapping
- The account → community → post → vote → earnings flow
- 502 on a failed reward and the retry endpoint
"""

from __future__ import annotations

import jwt
import pytest

from conftest import make_account, make_gateway, rpc_result, rpc_timeout
from tokengate.api import deps
from tokengate.api.deps import JWT_ALGORITHM, JWT_SECRET
from tokengate.api.main import app
from tokengate.config import TokengateConfig
from tokengate.constants import LOCKED_CONTENT_PLACEHOLDER
from tokengate.database.seed import seed_default_achievements


@pytest.fixture
def non_admin_token():
    return jwt.encode(
        {"sub": "67890", "username": "RegularUser", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _create_community(client, creator="0xC0", name="Builders", **extra) -> dict:
    body = {
        "creator_address": creator,
        "name": name,
        "token_name": f"{name} Token",
        "token_symbol": "BLD",
        **extra,
    }
    resp = client.post("/api/communities", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create_post(client, author="0xaa", content="gm", **extra) -> dict:
    resp = client.post("/api/posts", json={"author_address": author, "content": content, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Admin auth guards
# ===========================================================================
class TestAdminAuthGuards:
    """Admin endpoints must reject unauthenticated / non-admin requests."""

    def test_settings_requires_auth(self, client):
        assert client.get("/api/admin/settings").status_code == 401

    def test_settings_rejects_garbage_token(self, client):
        resp = client.get("/api/admin/settings", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401

    def test_settings_rejects_non_admin(self, client, non_admin_token):
        resp = client.get("/api/admin/settings", headers=_auth(non_admin_token))
        assert resp.status_code == 403

    def test_create_challenge_requires_auth(self, client):
        resp = client.post("/api/admin/challenges", json={"title": "x"})
        assert resp.status_code == 401

    def test_create_achievement_requires_auth(self, client):
        resp = client.post("/api/admin/achievements", json={
            "name": "x", "criterion_kind": "post_count", "criterion_threshold": 1,
        })
        assert resp.status_code == 401


# ===========================================================================
# Settings
# ===========================================================================
class TestSettings:
    def test_list_settings(self, client, admin_token):
        resp = client.get("/api/admin/settings", headers=_auth(admin_token))
        assert resp.status_code == 200
        keys = {s["key"]: s["value"] for s in resp.json()["settings"]}
        assert keys["reward.post_created"] == 1
        assert keys["gating.balance_scope"] == "community"

    def test_updated_reward_applies_to_next_post(self, client, admin_token):
        resp = client.put(
            "/api/admin/settings",
            json=[{"key": "reward.post_created", "value": 3, "category": "reward"}],
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json() == {"updated": 1}

        outcome = _create_post(client)
        assert outcome["reward"]["amount"] == "3"

    @pytest.mark.parametrize("key, value", [
        ("reward.post_created", -1),
        ("economy.xp_per_level", 0),
        ("gating.balance_scope", "everywhere"),
    ])
    def test_invalid_value_is_422(self, client, admin_token, key, value):
        resp = client.put(
            "/api/admin/settings", json=[{"key": key, "value": value}], headers=_auth(admin_token),
        )
        assert resp.status_code == 422
        keys = {s["key"]: s["value"] for s in client.get(
            "/api/admin/settings", headers=_auth(admin_token),
        ).json()["settings"]}
        assert keys[key] != value


# ===========================================================================
# Accounts
# ===========================================================================
class TestAccounts:
    def test_register_then_fetch(self, client):
        resp = client.post("/api/accounts", json={"address": "0xAB", "handle": "ab"})
        assert resp.status_code == 201
        assert resp.json()["address"] == "0xab"
        assert resp.json()["created"] is True

        again = client.post("/api/accounts", json={"address": "0xab"})
        assert again.status_code == 200
        assert again.json()["created"] is False

        fetched = client.get("/api/accounts/0xAB").json()
        assert fetched["display_name"] == "ab"
        assert fetched["memberships"] == []

    def test_invalid_address_is_422(self, client):
        assert client.post("/api/accounts", json={"address": "bob"}).status_code == 422
        assert client.get("/api/accounts/bob").status_code == 422

    def test_unknown_account_is_404(self, client):
        assert client.get("/api/accounts/0xdead").status_code == 404

    def test_progress(self, client, db_engine):
        seed_default_achievements(db_engine)
        _create_post(client)
        body = client.get("/api/accounts/0xaa/progress").json()
        assert body["completed_count"] == 1
        assert body["statistics"]["post_count"] == 1


# ===========================================================================
# Communities, posts, votes
# ===========================================================================
class TestCommunityFlow:
    def test_join_twice(self, client):
        community = _create_community(client)
        first = client.post(f"/api/communities/{community['id']}/join", json={"address": "0xaa"})
        second = client.post(f"/api/communities/{community['id']}/join", json={"address": "0xAA"})
        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["created"] is False
        detail = client.get(f"/api/communities/{community['id']}").json()
        assert detail["member_count"] == 2

    def test_join_unknown_community_is_404(self, client):
        resp = client.post("/api/communities/999/join", json={"address": "0xaa"})
        assert resp.status_code == 404

    def test_duplicate_community_is_403(self, client):
        _create_community(client)
        resp = client.post("/api/communities", json={
            "creator_address": "0xd0", "name": "Builders",
            "token_name": "Other", "token_symbol": "OTH",
        })
        assert resp.status_code == 403

    def test_post_earn_vote_and_earnings(self, client):
        community = _create_community(client, initial_member_balance="100")
        cid = community["id"]
        client.post(f"/api/communities/{cid}/join", json={"address": "0xaa"})

        post = _create_post(client, "0xc0", "alpha", community_id=cid,
                            is_token_gated=True, required_token_amount="500")
        post_id = post["action"]["post"]["id"]
        assert post["reward_status"] == "applied"

        # 0xaa holds 100 of the required 500
        listing = client.get("/api/posts", params={"viewer": "0xaa"}).json()
        assert listing[0]["content"] == LOCKED_CONTENT_PLACEHOLDER
        # the author always sees the body
        listing = client.get("/api/posts", params={"viewer": "0xc0"}).json()
        assert listing[0]["content"] == "alpha"

        vote = client.post(f"/api/posts/{post_id}/vote", json={"voter_address": "0xaa", "value": 1})
        assert vote.status_code == 200
        assert vote.json()["action"]["first_time"] is True

        earnings = client.get("/api/accounts/0xc0/earnings").json()
        assert earnings["memberships"][0]["balance"] == "102"
        assert len(earnings["transactions"]) == 2
        assert {t["kind"] for t in earnings["transactions"]} == {"reward"}

    def test_non_member_post_is_403(self, client):
        community = _create_community(client)
        resp = client.post("/api/posts", json={
            "author_address": "0xaa", "content": "hi", "community_id": community["id"],
        })
        assert resp.status_code == 403

    def test_comment_on_missing_post_is_404(self, client):
        resp = client.post("/api/posts/404/comments", json={"author_address": "0xaa", "content": "?"})
        assert resp.status_code == 404

    def test_comments_listing(self, client):
        post_id = _create_post(client)["action"]["post"]["id"]
        resp = client.post(f"/api/posts/{post_id}/comments", json={"author_address": "0xbb", "content": "gm"})
        assert resp.status_code == 201
        comments = client.get(f"/api/posts/{post_id}/comments").json()
        assert [c["author_address"] for c in comments] == ["0xbb"]

    def test_bad_vote_value_is_422(self, client):
        post_id = _create_post(client)["action"]["post"]["id"]
        resp = client.post(f"/api/posts/{post_id}/vote", json={"voter_address": "0xbb", "value": 2})
        assert resp.status_code == 422

    def test_vote_without_balance_is_403(self, client):
        post_id = _create_post(client)["action"]["post"]["id"]
        resp = client.post(f"/api/posts/{post_id}/vote", json={"voter_address": "0xbb", "value": 1})
        assert resp.status_code == 403


# ===========================================================================
# Reward failure & retry
# ===========================================================================
class TestRewardFailure:
    @pytest.fixture
    def chain_config(self):
        return TokengateConfig(
            platform_name="Tokengate Test",
            chain_rpc_url="http://rpc.test",
            treasury_address="0x7e45",
            platform_token_address="0x70ce",
            settle_rewards_on_chain=True,
        )

    def test_failed_reward_is_502_then_retry(self, client, chain_config):
        app.dependency_overrides[deps.get_config] = lambda: chain_config
        app.dependency_overrides[deps.get_token_gateway] = lambda: make_gateway(rpc_timeout)

        resp = client.post("/api/posts", json={"author_address": "0xaa", "content": "gm"})
        assert resp.status_code == 502
        body = resp.json()
        assert body["retryable"] is True
        post_id = body["action"]["post"]["id"]

        # The post itself was recorded.
        assert [p["id"] for p in client.get("/api/posts").json()] == [post_id]

        app.dependency_overrides[deps.get_token_gateway] = lambda: make_gateway(rpc_result("0x99"))
        retry = client.post("/api/rewards/retry", json={"action_type": "post", "entity_id": post_id})
        assert retry.status_code == 200
        assert retry.json()["reward_status"] == "applied"

        again = client.post("/api/rewards/retry", json={"action_type": "post", "entity_id": post_id})
        assert again.json()["reward_status"] == "duplicate"

        earnings = client.get("/api/accounts/0xaa/earnings").json()
        assert earnings["token_balance"] == "1"
        assert earnings["transactions"][0]["tx_hash"] == "0x99"

    def test_failed_achievement_payout_keeps_post_outcome(self, client, chain_config, db_engine):
        seed_default_achievements(db_engine)
        answered = []

        def first_transfer_only(request):
            if answered:
                return rpc_timeout(request)
            answered.append(request)
            return rpc_result("0x01")(request)

        gateway = make_gateway(first_transfer_only)
        app.dependency_overrides[deps.get_config] = lambda: chain_config
        app.dependency_overrides[deps.get_token_gateway] = lambda: gateway

        resp = client.post("/api/posts", json={"author_address": "0xaa", "content": "gm"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["reward_status"] == "applied"
        assert body["action"]["post"]["content"] == "gm"
        [failure] = body["achievement_failures"]
        assert failure["type"] == "achievement"

        app.dependency_overrides[deps.get_token_gateway] = lambda: make_gateway(rpc_result("0x02"))
        retry = client.post("/api/rewards/retry", json={
            "action_type": "achievement",
            "entity_id": failure["achievement_id"],
            "address": failure["address"],
        })
        assert retry.status_code == 200
        assert retry.json()["reward_status"] == "applied"
        assert client.get("/api/accounts/0xaa").json()["token_balance"] == "11"

    def test_retry_unknown_type_is_403(self, client):
        resp = client.post("/api/rewards/retry", json={"action_type": "tip", "entity_id": 1})
        assert resp.status_code == 403

    def test_mint_timeout_is_503(self, client):
        app.dependency_overrides[deps.get_token_gateway] = lambda: make_gateway(rpc_timeout)
        resp = client.post("/api/communities", json={
            "creator_address": "0xc0", "name": "Builders", "token_name": "B",
            "token_symbol": "BLD", "token_contract": "0xc94e", "initial_supply": "10",
        })
        assert resp.status_code == 503
        assert client.get("/api/communities").json() == []


# ===========================================================================
# Challenges & achievements
# ===========================================================================
class TestChallenges:
    def test_admin_creates_and_user_completes(self, client, admin_token):
        resp = client.post(
            "/api/admin/challenges",
            json={"title": "Ship it", "token_reward": "25"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        challenge_id = resp.json()["id"]

        done = client.post(
            f"/api/challenges/{challenge_id}/progress",
            json={"address": "0xaa", "progress": 100},
        )
        assert done.status_code == 200
        assert done.json()["reward_status"] == "applied"

        listing = client.get("/api/challenges", params={"address": "0xaa"}).json()
        assert listing[0]["completed"] is True
        assert listing[0]["progress"] == 100

        again = client.post(
            f"/api/challenges/{challenge_id}/progress",
            json={"address": "0xaa", "progress": 100},
        )
        assert again.json()["reward_status"] == "none"
        assert client.get("/api/accounts/0xaa").json()["token_balance"] == "25"

    def test_progress_out_of_range_is_422(self, client):
        resp = client.post("/api/challenges/1/progress", json={"address": "0xaa", "progress": 150})
        assert resp.status_code == 422


class TestAchievementsAndLeaderboard:
    def test_catalogue(self, client, db_engine):
        seed_default_achievements(db_engine)
        names = [a["name"] for a in client.get("/api/achievements").json()]
        assert "First Post" in names

    def test_admin_create_validates_criterion(self, client, admin_token):
        bad = client.post(
            "/api/admin/achievements",
            json={"name": "Karma", "criterion_kind": "karma", "criterion_threshold": 1},
            headers=_auth(admin_token),
        )
        assert bad.status_code == 422

        good = client.post(
            "/api/admin/achievements",
            json={"name": "Chatty", "criterion_kind": "comment_count", "criterion_threshold": "3"},
            headers=_auth(admin_token),
        )
        assert good.status_code == 201
        assert good.json()["criterion_threshold"] == "3"

        dup = client.post(
            "/api/admin/achievements",
            json={"name": "Chatty", "criterion_kind": "comment_count", "criterion_threshold": 3},
            headers=_auth(admin_token),
        )
        assert dup.status_code == 409

    def test_leaderboard(self, client, db_engine):
        seed_default_achievements(db_engine)
        make_account(db_engine, "0xbb", balance=1000)
        _create_post(client, "0xaa")
        # 0xbb qualifies for Token Holder on its next action
        post_id = _create_post(client, "0xcc")["action"]["post"]["id"]
        client.post(f"/api/posts/{post_id}/vote", json={"voter_address": "0xbb", "value": 1})

        board = client.get("/api/leaderboard").json()
        assert board[0]["address"] == "0xbb"
        assert board[0]["achievements"][0]["name"] == "Token Holder"
        assert board[0]["rank"] == 1
