"""
NPHIES Exchange Configuration
Settings for the NPHIES claim / prior-authorization encoding subsystem.
Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NphiesSettings(BaseSettings):
    """
    NPHIES exchange configuration settings.

    The encoders only read the provider/insurer defaults, the provider base URL,
    the currency, the timezone offset and the placeholder strictness flag. The
    transport fields are carried for the submit/poll client.
    Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="NPHIES_",  # All exchange settings prefixed with NPHIES_
    )

    # =========================================================================
    # Party Defaults
    # =========================================================================
    PROVIDER_ID: str = Field(
        default="1010613708",
        description="Provider license used as MessageHeader sender when a provider has no nphies_id",
    )
    PROVIDER_DOMAIN: str = Field(
        default="PR-FHIR",
        description="Provider domain used to build encounter identifier systems",
    )
    INSURER_ID: str = Field(
        default="INS-FHIR",
        description="Payer license used as destination when an insurer has no nphies_id",
    )

    # =========================================================================
    # Transport (consumed by the submit/poll client)
    # =========================================================================
    BASE_URL: str = Field(
        default="http://176.105.150.83",
        description="Exchange test endpoint",
    )
    PRODUCTION_URL: str = Field(
        default="https://hsb.nphies.sa",
        description="Exchange production endpoint",
    )
    OAUTH_URL: str = Field(
        default="https://hsb.nphies.sa/oauth/token",
        description="OAuth token endpoint",
    )
    TIMEOUT_MS: int = Field(
        default=60000,
        ge=1000,
        description="Request timeout in milliseconds",
    )
    RETRY_ATTEMPTS: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Transport retry attempts",
    )
    AUTO_POLL_AFTER_ACKNOWLEDGMENT: bool = Field(
        default=True,
        description="Poll for the final response after a queued acknowledgment",
    )
    AUTO_POLL_DELAY_MS: int = Field(
        default=3000,
        ge=0,
        description="Fixed delay before polling after acknowledgment",
    )

    # =========================================================================
    # Encoding
    # =========================================================================
    PROVIDER_BASE_URL: str = Field(
        default="http://provider.com",
        description="Fixed authority used for every non-header fullUrl",
    )
    DEFAULT_CURRENCY: str = Field(
        default="SAR",
        min_length=3,
        max_length=3,
        description="Currency used when a request does not carry one",
    )
    TIMEZONE_OFFSET: str = Field(
        default="+03:00",
        description="Offset appended to local date-times (Asia/Riyadh)",
    )
    STRICT_PLACEHOLDERS: bool = Field(
        default=False,
        description="Reject requests that would need a synthesized placeholder supporting info",
    )

    @field_validator("TIMEZONE_OFFSET")
    @classmethod
    def validate_offset(cls, v: str) -> str:
        """Validate a +HH:MM / -HH:MM offset."""
        if len(v) != 6 or v[0] not in "+-" or v[3] != ":":
            raise ValueError(f"Invalid timezone offset: {v}")
        if not (v[1:3].isdigit() and v[4:6].isdigit()):
            raise ValueError(f"Invalid timezone offset: {v}")
        return v

    @field_validator("PROVIDER_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# Singleton instance
_nphies_settings: Optional[NphiesSettings] = None


def get_nphies_settings() -> NphiesSettings:
    """
    Get cached NPHIES settings instance.

    Returns:
        NphiesSettings instance
    """
    global _nphies_settings
    if _nphies_settings is None:
        _nphies_settings = NphiesSettings()
    return _nphies_settings
