"""
Phaeton — Wallet Sign-in & Social Task Verification Core
==========================================================
Backend core of the Phaeton event/rewards platform.  Wallets sign in with a
one-time challenge, sessions roll forward through two rotating cookies, and
social tasks (join a Discord server, join a Telegram channel, follow / like /
retweet / quote on Twitter) are proven server-side against the platform APIs
before a task is marked complete.

Package layout::

    phaeton/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Cookie names, lifetimes, API bases
    ├── errors.py          # Typed error taxonomy rendered by the API
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # social_connections, oauth_states
    ├── engine/
    │   ├── store.py       # In-memory key/value store + periodic sweeper
    │   ├── rate_limit.py  # Fixed-window rate limiter
    │   └── retry.py       # Exponential backoff helper
    ├── auth/
    │   ├── nonce_store.py # Sign-in challenges (single use)
    │   ├── signature.py   # Wallet signature recovery
    │   ├── identity.py    # External identity backend client
    │   └── session.py     # Rotating session cookies
    ├── verification/
    │   ├── base.py        # PlatformCheck contract + platform errors
    │   ├── discord_check.py
    │   ├── telegram_check.py
    │   ├── twitter_check.py
    │   └── engine.py      # VerificationEngine
    ├── services/
    │   ├── connection_service.py  # Social connection persistence
    │   └── oauth_service.py       # OAuth state machine + token exchange
    └── api/
        ├── __main__.py    # python -m phaeton.api (logging + uvicorn)
        ├── main.py        # FastAPI app + session middleware
        ├── deps.py        # Dependency injection
        ├── auth.py        # Nonce / sign-in / logout / session
        ├── rate_limit.py  # Verification quota dependency
        └── routes/        # Task verification + account linking
"""

__version__ = "0.1.0"
