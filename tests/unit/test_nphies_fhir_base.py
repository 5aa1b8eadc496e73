"""
Unit Tests for NPHIES FHIR Base Utilities.

Source: Design Document 07_nphies_exchange_design.md
Verified: 2026-10-19

Tests:
- Date / date-time formatting without timezone drift
- Money and number formatting
- Exception message formatting
- Per-call encode context and bundle id arena
- Exchange settings validation
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from nphies_claims.core.config import NphiesSettings
from nphies_claims.core.enums import ClaimCategory, RequestUse
from nphies_claims.services.nphies.fhir_base import (
    BundleResourceIds,
    EncodeContext,
    NphiesValidationError,
    clamp_date,
    claim_profile_url,
    extension_url,
    fhir_number,
    first_of_month,
    money,
    to_date_only,
    to_date_time,
    to_date_time_with_offset,
    to_decimal,
)


# =============================================================================
# Date Formatting Tests
# =============================================================================


class TestDateFormatting:
    """Tests for date and date-time helpers."""

    def test_date_only_slices_iso_string(self):
        """Test that a date-time string is sliced, not shifted."""
        assert to_date_only("2025-01-14T23:30:00+03:00") == "2025-01-14"

    def test_date_only_from_objects(self):
        """Test date and datetime inputs."""
        assert to_date_only(date(2025, 1, 2)) == "2025-01-02"
        assert to_date_only(datetime(2025, 1, 2, 23, 59)) == "2025-01-02"

    def test_date_only_empty(self):
        """Test that empty input yields None."""
        assert to_date_only(None) is None
        assert to_date_only("") is None

    def test_date_time_naive_is_utc(self):
        """Test millisecond UTC formatting of a naive datetime."""
        assert to_date_time(datetime(2025, 1, 15, 10, 30)) == "2025-01-15T10:30:00.000Z"

    def test_date_time_converts_offset(self):
        """Test that offsets are converted to UTC."""
        assert to_date_time("2025-01-15T13:30:00+03:00") == "2025-01-15T10:30:00.000Z"

    def test_date_time_from_date_string(self):
        """Test date-only strings become midnight UTC."""
        assert to_date_time("2025-01-15") == "2025-01-15T00:00:00.000Z"

    def test_date_time_invalid_string(self):
        """Test that garbage input raises a validation error."""
        with pytest.raises(NphiesValidationError):
            to_date_time("not-a-date")

    def test_local_date_time_keeps_wall_clock(self):
        """Test that the wall-clock fields are kept and the offset appended."""
        assert to_date_time_with_offset("2025-01-15T10:30") == "2025-01-15T10:30:00+03:00"
        assert to_date_time_with_offset("2025-01-15T10:30:45.123Z") == "2025-01-15T10:30:45+03:00"
        assert to_date_time_with_offset(datetime(2025, 1, 15, 8, 5)) == "2025-01-15T08:05:00+03:00"
        assert to_date_time_with_offset("2025-01-15") == "2025-01-15T00:00:00+03:00"

    def test_first_of_month(self):
        """Test that the accounting period day is always 01."""
        assert first_of_month("2025-01-15") == "2025-01-01"
        assert first_of_month(datetime(2024, 12, 31, 23, 0)) == "2024-12-01"
        assert first_of_month(None) is None

    def test_clamp_date(self):
        """Test clamping into an optional range."""
        assert clamp_date("2025-01-20", "2025-01-10", "2025-01-12") == "2025-01-12"
        assert clamp_date("2025-01-01", "2025-01-10", None) == "2025-01-10"
        assert clamp_date("2025-01-11", "2025-01-10", "2025-01-12") == "2025-01-11"


# =============================================================================
# Number Formatting Tests
# =============================================================================


class TestNumbers:
    """Tests for Decimal conversion and money formatting."""

    def test_fhir_number_integral(self):
        """Test integral decimals serialize as int."""
        assert fhir_number(Decimal("105.00")) == 105
        assert isinstance(fhir_number(Decimal("105.00")), int)

    def test_fhir_number_fraction(self):
        """Test fractional decimals serialize as float."""
        assert fhir_number(Decimal("3.2")) == 3.2

    def test_money_rounds_half_up(self):
        """Test money rounding to two places."""
        assert money(Decimal("10.005"), "SAR") == {"value": 10.01, "currency": "SAR"}

    def test_to_decimal(self):
        """Test numeric coercion."""
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(None) == Decimal("0")
        assert to_decimal(3) == Decimal("3")

    def test_to_decimal_invalid(self):
        """Test non-numeric input raises."""
        with pytest.raises(NphiesValidationError):
            to_decimal("abc")


# =============================================================================
# Exception Tests
# =============================================================================


class TestExceptions:
    """Tests for exception formatting."""

    def test_validation_error_message(self):
        """Test that context is joined into the message."""
        error = NphiesValidationError(
            "Item is missing productOrService code",
            field="items.product_or_service_code",
            category="vision",
            item_sequence=2,
        )
        assert str(error) == (
            "Item is missing productOrService code | Field: items.product_or_service_code"
            " | Category: vision | Item: 2"
        )

    def test_validation_error_minimal(self):
        """Test a message without context."""
        assert str(NphiesValidationError("bad")) == "bad"


# =============================================================================
# Encode Context Tests
# =============================================================================


class TestBundleResourceIds:
    """Tests for the per-bundle id arena."""

    def test_preferred_id_wins(self, ids):
        """Test that a caller-supplied id is used."""
        arena = BundleResourceIds(ids)
        assert arena.allocate("patient", "pat-1") == "pat-1"

    def test_allocation_is_stable(self, ids):
        """Test that a role keeps its first id."""
        arena = BundleResourceIds(ids)
        first = arena.allocate("claim")
        assert arena.allocate("claim") == first
        assert arena.get("claim") == first
        assert first == "id-0001"

    def test_unallocated_role(self, ids):
        """Test reading a role that was never allocated."""
        arena = BundleResourceIds(ids)
        assert not arena.has("coverage")
        with pytest.raises(KeyError):
            arena.get("coverage")

    def test_unknown_role(self, ids):
        """Test allocating an unknown role."""
        with pytest.raises(KeyError):
            BundleResourceIds(ids).allocate("surgeon")


class TestEncodeContext:
    """Tests for EncodeContext."""

    def test_clock_read_once(self, settings):
        """Test that now is taken once per call."""
        calls = []

        def clock():
            calls.append(1)
            return datetime(2025, 1, 15, 10, 30, len(calls))

        ctx = EncodeContext.create(
            ClaimCategory.PROFESSIONAL, RequestUse.CLAIM, settings=settings, clock=clock
        )
        assert ctx.now == ctx.now
        assert len(calls) == 1

    def test_local_datetime_uses_configured_offset(self, clock):
        """Test the settings offset is applied."""
        ctx = EncodeContext.create(
            ClaimCategory.DENTAL,
            RequestUse.PREAUTHORIZATION,
            settings=NphiesSettings(_env_file=None, TIMEZONE_OFFSET="+04:00"),
            clock=clock,
        )
        assert ctx.local_datetime() == "2025-01-15T10:30:00+04:00"
        assert not ctx.is_claim

    def test_full_url(self, settings):
        """Test fullUrl uses the provider base URL."""
        ctx = EncodeContext.create(ClaimCategory.VISION, RequestUse.CLAIM, settings=settings)
        assert ctx.full_url("Claim", "c-1") == "http://provider.com/Claim/c-1"

    def test_warn_collects(self, settings):
        """Test warnings are recorded on the context."""
        ctx = EncodeContext.create(ClaimCategory.PHARMACY, RequestUse.CLAIM, settings=settings)
        ctx.warn("defaulted")
        assert ctx.warnings == ["defaulted"]


# =============================================================================
# URL and Settings Tests
# =============================================================================


class TestUrlsAndSettings:
    """Tests for canonical URLs and settings validation."""

    def test_claim_profile_url(self):
        """Test dental profiles use the oral slug."""
        assert claim_profile_url(ClaimCategory.DENTAL, RequestUse.PREAUTHORIZATION) == (
            "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition/oral-priorauth|1.0.0"
        )
        assert claim_profile_url(ClaimCategory.PHARMACY, RequestUse.CLAIM).endswith(
            "/pharmacy-claim|1.0.0"
        )

    def test_extension_url(self):
        """Test extension URL format."""
        assert extension_url("episode") == (
            "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition/extension-episode"
        )

    def test_invalid_offset_rejected(self):
        """Test that a malformed timezone offset is rejected."""
        with pytest.raises(ValidationError):
            NphiesSettings(_env_file=None, TIMEZONE_OFFSET="0300")

    def test_base_url_trailing_slash_stripped(self):
        """Test the provider base URL is normalized."""
        settings = NphiesSettings(_env_file=None, PROVIDER_BASE_URL="http://clinic.sa/")
        assert settings.PROVIDER_BASE_URL == "http://clinic.sa"

    def test_defaults(self, settings):
        """Test encoding defaults."""
        assert settings.DEFAULT_CURRENCY == "SAR"
        assert settings.TIMEZONE_OFFSET == "+03:00"
        assert settings.STRICT_PLACEHOLDERS is False

    def test_transport_fields(self, settings):
        """Test the transport endpoints are carried as configured."""
        assert set(NphiesSettings.model_fields) == {
            "PROVIDER_ID",
            "PROVIDER_DOMAIN",
            "INSURER_ID",
            "BASE_URL",
            "PRODUCTION_URL",
            "OAUTH_URL",
            "TIMEOUT_MS",
            "RETRY_ATTEMPTS",
            "AUTO_POLL_AFTER_ACKNOWLEDGMENT",
            "AUTO_POLL_DELAY_MS",
            "PROVIDER_BASE_URL",
            "DEFAULT_CURRENCY",
            "TIMEZONE_OFFSET",
            "STRICT_PLACEHOLDERS",
        }
        assert settings.BASE_URL == "http://176.105.150.83"
        assert settings.PRODUCTION_URL == "https://hsb.nphies.sa"
