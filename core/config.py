"""
core/config.py -- SecureAuth settings, read once from the environment.

Every environment lookup goes through get_settings(); nothing else in the
project touches os.environ.

  get_settings()   -- lru_cache'd, so the whole process shares one Settings.
  Settings         -- pydantic-settings model. PARSE_MASTER_KEY populates
                      parse_master_key, and so on; a .env file is optional.
  validate_credentials
                   -- with DEBUG=true missing BaaS credentials only warn, so
                      the app and its tests start offline. Otherwise startup
                      fails fast.

The master key bypasses every BaaS access rule. It travels only from this
process to the BaaS and is never echoed to a client.

Layer rule: core/ imports nothing from api/, web/, auth/, or client/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("secureauth.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False

    # ------------------------------------------------------------------
    # BaaS (Parse-compatible REST API)
    # ------------------------------------------------------------------

    parse_server_url: str = "https://parseapi.back4app.com"
    parse_application_id: str = ""
    parse_rest_api_key: str = ""
    parse_master_key: str = ""
    baas_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:5000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Web UI session cookie
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_cookie_max_age: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    signup_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Profile pictures
    # ------------------------------------------------------------------

    max_upload_bytes: int = 5 * 1024 * 1024

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    activity_log_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_credentials(self) -> "Settings":
        """Require BaaS credentials outside of dev mode.

        Dev mode (DEBUG=true): missing credentials only produce a warning.
            Every BaaS call will then fail with an upstream error, which is
            acceptable for local work against a fake backend.

        Production mode: refuse to start. Without the master key the admin
            guard cannot re-fetch roles and every privileged route breaks.
        """
        missing = [
            name
            for name in ("parse_application_id", "parse_rest_api_key", "parse_master_key")
            if not getattr(self, name)
        ]
        if missing:
            env_names = ", ".join(name.upper() for name in missing)
            if self.debug:
                logger.warning("BaaS credentials not configured (%s). Upstream calls will fail.", env_names)
            else:
                raise ValueError(
                    f"{env_names} required in production mode. "
                    "Set them in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        self.parse_server_url = self.parse_server_url.rstrip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
