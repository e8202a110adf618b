from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

DEFAULT_TOKEN_URL = "https://api.productboard.com/oauth/token"
REDIRECT_PATH = "/productboard/callback"


class ProviderConfig(BaseModel):
    """OAuth client settings for the provider token endpoint."""

    client_id: str = ""
    client_secret: str = ""
    token_url: str = DEFAULT_TOKEN_URL
    redirect_uri: str = ""
    timeout: float = 10.0


class ExpiryConfig(BaseModel):
    """Expiry policy settings."""

    skew_seconds: int = 60
    default_ttl: int = 3600


class BrokerConfig(BaseModel):
    """Top-level configuration model."""

    provider: ProviderConfig = ProviderConfig()
    expiry: ExpiryConfig = ExpiryConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> BrokerConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TOKENBROKER_CONFIG env
            variable or 'config.yaml' in the current directory.

    Environment variables ``CLIENT_ID``, ``CLIENT_SECRET``, ``BASE_URL`` and
    ``TOKENBROKER_DATABASE_URL`` (or ``DATABASE_URL``) override file values.
    """

    config_path = path or os.getenv("TOKENBROKER_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = BrokerConfig(**data)
    else:
        config = BrokerConfig()

    env_db_url = os.getenv("TOKENBROKER_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url

    if os.getenv("CLIENT_ID"):
        config.provider.client_id = os.environ["CLIENT_ID"]
    if os.getenv("CLIENT_SECRET"):
        config.provider.client_secret = os.environ["CLIENT_SECRET"]
    base_url = os.getenv("BASE_URL")
    if base_url:
        config.provider.redirect_uri = base_url.rstrip("/") + REDIRECT_PATH
    return config
