"""
core/config.py
----------------

Client configuration module.

Defines strongly-typed settings loaded from the environment using
``pydantic-settings``.  These settings control the server address,
the per-call deadline, retry counts and backoff for the Millennium
client.  The defaults are sensible for a LAN-hosted ERP but can be
overridden via environment variables at deployment time.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from millennium.core.auth import AuthType


class Settings(BaseSettings):
    """Client settings loaded from environment variables.

    The settings structure is flat and uses environment variables
    prefixed with ``MILLENNIUM_``.  For example, to override the default
    call timeout you can set ``MILLENNIUM_TIMEOUT=15``.

    See :class:`pydantic_settings.BaseSettings` for details on how
    environment variables are mapped onto fields.
    """

    server: str = Field("", description="Millennium base address, e.g. http://erp.local:6017")
    timeout: float = Field(30.0, gt=0, description="Deadline for a whole call, retries included, in seconds.")
    probe_timeout: Optional[float] = Field(None, gt=0, description="Timeout of the connectivity probe; defaults to ``timeout``.")

    # Retry settings
    max_retries: int = Field(3, ge=0, description="Extra attempts on transport errors.")
    backoff_factor: float = Field(0.5, ge=0, description="Backoff factor for exponential retry delays.")
    backoff_max: float = Field(30.0, ge=0, description="Upper bound for a single retry delay.")

    # Optional credentials used by Millennium.from_settings
    username: Optional[str] = None
    password: Optional[str] = None
    auth_type: Optional[AuthType] = None

    model_config = SettingsConfigDict(env_prefix="MILLENNIUM_", env_file=None, case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    """Return a cached instance of the client settings.

    Using a cache prevents environment parsing on every client
    construction.  Call ``get_settings.cache_clear()`` after changing
    the environment.
    """
    return Settings()
