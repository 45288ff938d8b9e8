"""
Tokengate — Token-Gated Community Ledger
=========================================
Wallet-identified accounts join communities that each mint their own
token, post, comment and vote, and earn tokens and achievement points for
taking part.  Gated posts stay hidden from accounts that do not hold enough
of the right token.

Package layout::

    tokengate/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # System address, placeholders, leveling formula
    ├── errors.py          # Domain error taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default settings + achievements
    ├── engine/
    │   ├── events.py      # ActionEvent envelope + ActionType
    │   ├── reward.py      # Reward calculation (pure)
    │   ├── achievements.py # Criterion dispatch (pure)
    │   └── gating.py      # Gated-content visibility (pure)
    ├── services/
    │   ├── balance_service.py     # Atomic credit/debit + ledger rows
    │   ├── ledger_service.py      # Reward transaction + on-chain settlement
    │   ├── account_service.py     # Wallet accounts
    │   ├── membership_service.py  # Community membership registry
    │   ├── community_service.py   # Community creation + token provisioning
    │   ├── content_service.py     # Posts, comments, votes, gated listing
    │   ├── challenge_service.py   # Challenge progress
    │   ├── reward_service.py      # Action → content → reward → achievements
    │   ├── achievement_service.py # Unlocks, progress, leaderboard
    │   ├── settings_service.py    # Typed settings reads / writes
    │   ├── token_contract.py      # ERC-20 JSON-RPC client
    │   └── profile_directory.py   # Address → handle lookups
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency injection + admin JWT
        ├── schemas.py     # Shared request field types
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
