"""
Settings for the email authentication verifier.

Values can be overridden through environment variables prefixed with
``EMAIL_AUTH_`` or through a ``.env`` file, e.g.::

    EMAIL_AUTH_DNS_TIMEOUT=3
    EMAIL_AUTH_RESOLVER_NAMESERVERS='["1.1.1.1", "8.8.8.8"]'
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EMAIL_AUTH_", env_file=".env", env_file_encoding="utf-8"
    )

    app_name: str = "email-auth-verifier"
    version: str = "0.2.0"

    # DNS resolution. https:// entries are queried over DNS-over-HTTPS, an
    # empty list falls back to the system resolver configuration.
    resolver_nameservers: List[str] = ["https://cloudflare-dns.com/dns-query"]
    dns_timeout: float = 5.0  # seconds, per query
    deadline_seconds: float = 12.0  # whole verification request

    # Verification policy
    default_dkim_selectors: List[str] = ["google"]
    dmarc_enforcing_policies: List[str] = ["quarantine", "reject"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "colored"  # colored | plain | json

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 8000


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
