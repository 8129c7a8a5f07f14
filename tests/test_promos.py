"""
Tests for the promo catalog and configuration loading
"""

import json
from decimal import Decimal

import pytest

from bistro_cart.cart.promos import DEFAULT_PROMO_CODES, PromoCatalog, normalize_code
from bistro_cart.config import PricingConfig, SyncConfig


class TestPromoCatalog:
    """Tests for PromoCatalog."""

    def test_default_codes(self):
        catalog = PromoCatalog()

        assert sorted(catalog.codes()) == ["FIRST20", "SAVE10", "WELCOME15"]
        assert len(catalog) == 3

    @pytest.mark.parametrize("code", ["SAVE10", "save10", "  Save10 \n"])
    def test_lookup_is_case_and_whitespace_insensitive(self, code):
        promo = PromoCatalog().lookup(code)

        assert promo is not None
        assert promo.discount_rate == Decimal("0.10")
        assert promo.minimum_order_subtotal == Decimal("20")

    def test_unknown_code(self):
        catalog = PromoCatalog()

        assert catalog.lookup("FREEFOOD") is None
        assert "FREEFOOD" not in catalog
        assert "welcome15" in catalog

    def test_normalize_code(self):
        assert normalize_code(None) == ""
        assert normalize_code(" first20 ") == "FIRST20"

    def test_from_mapping_overrides_base(self):
        catalog = PromoCatalog.from_mapping(
            {"save10": {"discount_rate": "0.12", "minimum_order_subtotal": "10"}},
            base=DEFAULT_PROMO_CODES,
        )

        assert len(catalog) == 3
        assert catalog.lookup("SAVE10").discount_rate == Decimal("0.12")
        assert catalog.lookup("SAVE10").minimum_order_subtotal == Decimal("10")

    def test_from_env_adds_codes(self, monkeypatch):
        monkeypatch.setenv(
            "CART_PROMO_CODES",
            json.dumps({"LUNCH5": {"discount_rate": 0.05, "description": "Lunch deal"}}),
        )

        catalog = PromoCatalog.from_env()

        assert len(catalog) == 4
        assert catalog.lookup("lunch5").description == "Lunch deal"
        assert catalog.lookup("LUNCH5").minimum_order_subtotal == Decimal("0")

    def test_from_env_without_variable(self, monkeypatch):
        monkeypatch.delenv("CART_PROMO_CODES", raising=False)
        assert len(PromoCatalog.from_env()) == 3

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]"])
    def test_from_env_rejects_bad_values(self, monkeypatch, raw):
        monkeypatch.setenv("CART_PROMO_CODES", raw)
        with pytest.raises(ValueError):
            PromoCatalog.from_env()


class TestConfig:
    """Tests for environment-driven configuration."""

    def test_pricing_defaults(self, monkeypatch):
        for name in ("CART_TAX_RATE", "CART_FREE_DELIVERY_THRESHOLD", "CART_FLAT_DELIVERY_FEE"):
            monkeypatch.delenv(name, raising=False)

        config = PricingConfig.from_env()

        assert config.tax_rate == Decimal("0.08")
        assert config.free_delivery_threshold == Decimal("30.00")
        assert config.flat_delivery_fee == Decimal("3.99")

    def test_pricing_from_env(self, monkeypatch):
        monkeypatch.setenv("CART_TAX_RATE", "0.0725")
        monkeypatch.setenv("CART_FLAT_DELIVERY_FEE", "4.50")

        config = PricingConfig.from_env()

        assert config.tax_rate == Decimal("0.0725")
        assert config.flat_delivery_fee == Decimal("4.50")

    def test_pricing_invalid_env(self, monkeypatch):
        monkeypatch.setenv("CART_TAX_RATE", "eight percent")
        with pytest.raises(ValueError, match="CART_TAX_RATE"):
            PricingConfig.from_env()

    def test_sync_from_env(self, monkeypatch):
        monkeypatch.setenv("CART_REMOTE_TABLE", "user_carts")
        monkeypatch.setenv("CART_REMOTE_RETRY_ATTEMPTS", "5")
        monkeypatch.setenv("CART_SESSION_TTL", "3600")
        monkeypatch.delenv("CART_REMOTE_RETRY_WAIT", raising=False)

        config = SyncConfig.from_env()

        assert config.remote_table == "user_carts"
        assert config.retry_attempts == 5
        assert config.retry_wait == 0.2
        assert config.session_ttl == 3600

    def test_sync_invalid_values(self, monkeypatch):
        with pytest.raises(ValueError):
            SyncConfig(retry_attempts=0)
        with pytest.raises(ValueError):
            SyncConfig(session_ttl=0)

        monkeypatch.setenv("CART_REMOTE_RETRY_ATTEMPTS", "three")
        with pytest.raises(ValueError, match="CART_REMOTE_RETRY_ATTEMPTS"):
            SyncConfig.from_env()
