"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from functools import lru_cache
from typing import Optional


AUTO_DOMAIN_NAME = "auto"


class ConfigurationError(Exception):
    """Raised when a required setting cannot be determined."""
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GACX_",
        env_file=".env",
        case_sensitive=False,
        frozen=True,
    )

    # Application
    app_name: str = "gacx"
    debug: bool = False

    # Content Experiments endpoint
    api_url: str = "http://www.google-analytics.com/cx/api.js"
    connect_timeout: float = 2.0  # seconds
    timeout: float = 2.0  # seconds

    # Cookies (must match what the tracking client itself writes)
    # "auto" means: use the Host header of the current request
    domain_name: str = AUTO_DOMAIN_NAME
    cookie_path: str = "/"
    cookie_expiration_seconds: int = 48211200

    # Response cache for experiment data, disabled when cache_dir is unset
    cache_dir: Optional[str] = None
    cache_ttl: int = 60  # seconds

    @field_validator("domain_name")
    @classmethod
    def lowercase_domain_name(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("cache_dir")
    @classmethod
    def strip_cache_dir(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.rstrip("/\\") or None

    def resolve_domain_name(self, host: Optional[str] = None) -> str:
        """
        Determine the cookie domain name.

        Args:
            host: Host header of the current request, used when the
                configured domain name is "auto"

        Returns:
            Lower-cased domain name without port

        Raises:
            ConfigurationError: If no domain name can be determined
        """
        if self.domain_name and self.domain_name != AUTO_DOMAIN_NAME:
            return self.domain_name

        if self.domain_name == AUTO_DOMAIN_NAME and host:
            domain = host.strip().lower()
            # Drop the port, but leave bracketed IPv6 literals alone
            if ":" in domain and not domain.endswith("]"):
                domain = domain.rsplit(":", 1)[0]
            if domain:
                return domain

        raise ConfigurationError(
            "Unable to determine domain name, please provide one via GACX_DOMAIN_NAME"
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
