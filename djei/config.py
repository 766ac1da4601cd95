"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Secrets (the identity provider's JWT secret, Spotify and Stripe
keys) never live in source code.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from djei.config import settings
    print(settings.SUPABASE_JWT_SECRET)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the DJEI backend.

    Required fields (no defaults) MUST be set in .env or environment:
      - SUPABASE_JWT_SECRET: Shared secret used by the identity provider to
        sign access tokens. We only verify tokens, we never issue real ones.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "DJEI Backend API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    # SQLite for local development; use a postgresql+asyncpg URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./djei.db"

    # --- Identity provider (Supabase-style JWTs) ---
    SUPABASE_JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    # Only used by demo/mint_token.py to produce local test tokens
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Accounts listed here hold elevated privilege in addition to any token
    # whose app_metadata.role is "admin"
    ADMIN_USER_IDS: list[str] = []

    # --- Token ledger ---
    # Attempts at writing a transaction-log / audit row after a committed mutation
    LEDGER_LOG_ATTEMPTS: int = 3
    # Compare-and-swap retries for admin adjustments
    LEDGER_CAS_ATTEMPTS: int = 5

    # --- Music catalog (Spotify) ---
    SPOTIFY_CLIENT_ID: str | None = None
    SPOTIFY_CLIENT_SECRET: str | None = None
    SPOTIFY_ACCOUNTS_URL: str = "https://accounts.spotify.com/api/token"
    SPOTIFY_API_URL: str = "https://api.spotify.com/v1"
    SPOTIFY_TIMEOUT_SECONDS: float = 10.0

    # --- Payments (Stripe) ---
    STRIPE_SECRET_KEY: str | None = None
    PAYMENT_CURRENCY: str = "usd"
    # When enabled, /tokens/purchase retrieves the payment intent and
    # requires it to have succeeded before crediting tokens
    VERIFY_PAYMENT_INTENTS: bool = False

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000", "https://djei.com"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
