"""Tests for stock and promo-code counters."""

import threading
from datetime import datetime, timedelta

import pytest

from decorabake.common.errors import NotFoundError, ValidationError


class TestStock:
    def test_decrement_tracked_stock(self, ledger, products):
        ledger.decrement_stock("prod-topper", 2)
        assert ledger.get_stock("prod-topper") == 3

    def test_cannot_go_negative(self, ledger, products):
        with pytest.raises(ValidationError):
            ledger.decrement_stock("prod-topper", 6)
        assert ledger.get_stock("prod-topper") == 5

    def test_untracked_stock_is_noop(self, ledger, products):
        ledger.decrement_stock("prod-kit", 100)
        assert ledger.get_stock("prod-kit") is None

    def test_unknown_product(self, ledger, products):
        with pytest.raises(NotFoundError):
            ledger.decrement_stock("prod-missing", 1)

    def test_unknown_variant(self, ledger, products):
        with pytest.raises(NotFoundError):
            ledger.decrement_stock("prod-stencil", 1, variant_id="var-missing")

    def test_quantity_must_be_positive(self, ledger, products):
        with pytest.raises(ValidationError):
            ledger.decrement_stock("prod-topper", 0)


class TestPromoUsability:
    def test_summer20_at_limit_is_not_usable(self, ledger, add_promo):
        add_promo("SUMMER20", discount_type="percentage", discount_value=20, usage_limit=100, usage_count=100)
        assert ledger.is_promo_usable("SUMMER20") is False
        with pytest.raises(ValidationError, match="Limit reached"):
            ledger.validate_promo("SUMMER20", 149)

    def test_unlimited_code_stays_usable(self, ledger, add_promo):
        add_promo("FOREVER", usage_limit=0, usage_count=5000)
        assert ledger.is_promo_usable("forever") is True

    def test_expired_code(self, ledger, add_promo):
        add_promo("OLD10", expiry_date=datetime.utcnow() - timedelta(days=1))
        assert ledger.is_promo_usable("OLD10") is False
        with pytest.raises(ValidationError, match="Expired"):
            ledger.validate_promo("OLD10", 50)

    def test_inactive_code(self, ledger, add_promo):
        add_promo("PAUSED", active=False)
        with pytest.raises(ValidationError, match="Not active"):
            ledger.validate_promo("PAUSED", 50)

    def test_unknown_code(self, ledger):
        assert ledger.is_promo_usable("NOPE") is False
        with pytest.raises(ValidationError, match="Invalid code"):
            ledger.validate_promo("NOPE", 50)

    def test_min_order(self, ledger, add_promo):
        add_promo("BIGSPEND", min_order=100)
        with pytest.raises(ValidationError, match=r"Min order \$100.00"):
            ledger.validate_promo("BIGSPEND", 99.99)


class TestPromoDiscount:
    def test_percentage_rounds_to_cents(self, ledger, add_promo):
        add_promo("SUMMER20", discount_type="percentage", discount_value=20)
        quote = ledger.validate_promo("summer20", "149.99")
        assert quote["valid"] is True
        assert quote["discount"] == 30.0
        assert quote["promo"]["code"] == "SUMMER20"

    def test_fixed_is_capped_at_total(self, ledger, add_promo):
        add_promo("TENOFF", discount_value=10)
        assert ledger.validate_promo("TENOFF", 7.5)["discount"] == 7.5

    def test_quote_does_not_consume(self, ledger, add_promo):
        add_promo("TENOFF", discount_value=10)
        ledger.validate_promo("TENOFF", 50)
        assert ledger.get_promo("TENOFF")["usage_count"] == 0


class TestPromoUsage:
    def test_increment(self, ledger, add_promo):
        add_promo("SAVE5", usage_limit=3)
        ledger.increment_promo_usage("save5")
        assert ledger.get_promo("SAVE5")["usage_count"] == 1

    def test_limit_reached(self, ledger, add_promo):
        add_promo("LAST1", usage_limit=1)
        ledger.increment_promo_usage("LAST1")
        with pytest.raises(ValidationError):
            ledger.increment_promo_usage("LAST1")
        assert ledger.get_promo("LAST1")["usage_count"] == 1

    def test_unknown_code(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.increment_promo_usage("MISSING")

    def test_concurrent_applications_both_count(self, ledger, add_promo):
        add_promo("SUMMER20", usage_limit=100, usage_count=10)
        barrier = threading.Barrier(2)
        errors = []

        def apply():
            barrier.wait()
            try:
                ledger.increment_promo_usage("SUMMER20")
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=apply) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert ledger.get_promo("SUMMER20")["usage_count"] == 12

    def test_concurrent_applications_respect_limit(self, ledger, add_promo):
        add_promo("LAST1", usage_limit=11, usage_count=10)
        barrier = threading.Barrier(4)
        outcomes = []

        def apply():
            barrier.wait()
            try:
                ledger.increment_promo_usage("LAST1")
                outcomes.append("ok")
            except ValidationError:
                outcomes.append("limit")

        threads = [threading.Thread(target=apply) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["limit", "limit", "limit", "ok"]
        assert ledger.get_promo("LAST1")["usage_count"] == 11
