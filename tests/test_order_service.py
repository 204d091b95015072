"""Tests for order placement and the order status lifecycle."""

import threading

import pytest

from decorabake.common.errors import NotFoundError, StoreError, ValidationError
from decorabake.common.services import order_service as order_module
from decorabake.common.services.order_service import check_order_transition


AUSPOST_SHIPMENT = {"tracking_number": "AP123456789", "courier": "australia-post", "delivery_days": "3-5"}


class TestCreateOrder:
    def test_checkout_hand_off_persists_and_notifies(self, make_order, ledger, transport):
        result = make_order()

        assert result["order_code"] == "DB-1001"
        order = result["order"]
        assert order["status"] == "pending"
        assert order["total"] == 158.95
        assert order["customer"]["email"] == "jane.citizen@example.com"
        assert order["shipping_metadata"] is None
        assert ledger.get_stock("prod-topper") == 4

        recipients = [m["To"] for m in transport.outbox]
        assert recipients == ["jane.citizen@example.com", "owner@decorabake.test"]
        assert result["notifications"]["customer"]["delivered"] is True
        assert result["notifications"]["operator"]["delivered"] is True

    def test_generated_codes_are_sequential(self, make_order):
        first = make_order(order_code=None)
        second = make_order(order_code=None)
        assert first["order_code"] == "ORD-0001"
        assert second["order_code"] == "ORD-0002"

    def test_non_numeric_codes_do_not_block_generation(self, make_order):
        make_order(order_code="ORD-LEGACY-IMPORT")
        assert make_order(order_code=None)["order_code"] == "ORD-0001"
        assert make_order(order_code=None)["order_code"] == "ORD-0002"

    def test_exhausted_code_retries_raise_store_error(self, make_order, order_service, monkeypatch):
        make_order(order_code=None)
        monkeypatch.setattr(order_module, "next_code", lambda *args, **kwargs: "ORD-0001")
        with pytest.raises(StoreError, match="could not allocate"):
            make_order(order_code=None)
        assert order_service.list_orders()["total"] == 1

    def test_concurrent_checkouts_share_promo(self, make_order, add_promo, ledger):
        add_promo("SUMMER20", usage_limit=100, usage_count=10)
        barrier = threading.Barrier(2)
        errors = []

        def checkout(code):
            barrier.wait()
            try:
                make_order(order_code=code, promo_code="SUMMER20", promo_discount=5, total=153.95)
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=checkout, args=(code,)) for code in ("DB-2001", "DB-2002")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert ledger.get_promo("SUMMER20")["usage_count"] == 12
        assert ledger.get_stock("prod-topper") == 3

    def test_duplicate_supplied_code_rolls_back_stock(self, make_order, ledger):
        make_order()
        with pytest.raises(ValidationError):
            make_order()
        assert ledger.get_stock("prod-topper") == 4

    def test_untracked_stock_is_left_alone(self, make_order, ledger):
        items = [{"product_id": "prod-kit", "name": "Sprinkle Kit", "unit_price": 24.50, "quantity": 3}]
        make_order(items=items, subtotal=73.50, total=83.45)
        assert ledger.get_stock("prod-kit") is None

    def test_variant_stock_is_decremented(self, make_order, order_service, ledger):
        items = [{"product_id": "prod-stencil", "variant_id": "var-stencil-lg", "name": "Lace Stencil", "price": 18, "quantity": 2}]
        make_order(items=items, subtotal=36, total=45.95)
        with pytest.raises(ValidationError):
            make_order(order_code="DB-1002", items=items, subtotal=36, total=45.95)
        with pytest.raises(NotFoundError):
            order_service.get_order("DB-1002")

    def test_insufficient_stock_persists_nothing(self, make_order, order_service, ledger):
        items = [{"product_id": "prod-topper", "name": "Rose Gold Cake Topper", "unit_price": 149, "quantity": 6}]
        with pytest.raises(ValidationError):
            make_order(items=items, subtotal=894, total=903.95)
        assert ledger.get_stock("prod-topper") == 5
        assert order_service.list_orders()["total"] == 0

    def test_unknown_product_is_rejected(self, make_order):
        items = [{"product_id": "prod-missing", "name": "Ghost", "unit_price": 10, "quantity": 1}]
        with pytest.raises(NotFoundError):
            make_order(items=items)

    def test_promo_usage_is_consumed(self, make_order, add_promo, ledger):
        code = add_promo("SAVE5")
        result = make_order(promo_code="save5", promo_discount=5, total=153.95)
        assert result["order"]["promo_code"] == "SAVE5"
        assert ledger.get_promo(code)["usage_count"] == 1

    def test_exhausted_promo_rejects_whole_order(self, make_order, add_promo, order_service, ledger, transport):
        add_promo("SUMMER20", discount_type="percentage", discount_value=20, usage_limit=100, usage_count=100)
        with pytest.raises(ValidationError, match="Limit reached"):
            make_order(promo_code="SUMMER20", promo_discount=29.80, total=129.15)
        assert order_service.list_orders()["total"] == 0
        assert ledger.get_stock("prod-topper") == 5
        assert transport.outbox == []

    def test_discount_without_code_is_rejected(self, make_order):
        with pytest.raises(ValidationError):
            make_order(promo_discount=5, total=153.95)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"customer": {"first_name": "Jane"}},
            {"total": -1},
            {"status": "shipped"},
            {"payment_status": "lost"},
        ],
    )
    def test_malformed_payloads(self, make_order, overrides):
        with pytest.raises(ValidationError):
            make_order(**overrides)


class TestTransitionRules:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "processing"),
            ("pending", "shipped"),
            ("shipped", "delivered"),
            ("shipped", "cancelled"),
            ("shipped", "shipped"),
            ("delivered", "delivered"),
        ],
    )
    def test_allowed(self, current, target):
        check_order_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("processing", "pending"),
            ("shipped", "processing"),
            ("processing", "delivered"),
            ("pending", "delivered"),
            ("delivered", "cancelled"),
            ("cancelled", "pending"),
            ("pending", "refunded"),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(ValidationError):
            check_order_transition(current, target)


class TestTransition:
    def test_shipping_records_tracking_url(self, make_order, order_service, transport, html_of):
        make_order()
        result = order_service.transition("DB-1001", "shipped", shipping_data=AUSPOST_SHIPMENT)

        url = "https://auspost.com.au/mypost/track/#/details/AP123456789"
        assert result.order["status"] == "shipped"
        assert result.order["shipping_metadata"]["tracking_url"] == url
        assert order_service.get_order("DB-1001")["shipping_metadata"]["tracking_url"] == url
        assert result.email_sent is True
        assert result.email_error is None

        message = transport.outbox[-1]
        assert message["Subject"] == "Order Shipped! - DB-1001"
        assert url in html_of(message)
        assert "AP123456789" in html_of(message)

    def test_explicit_tracking_url_wins(self, make_order, order_service):
        make_order()
        shipment = {"tracking_number": "X1", "courier": "dhl", "tracking_url": "https://track.example/X1"}
        result = order_service.transition("DB-1001", "shipped", shipping_data=shipment)
        assert result.order["shipping_metadata"]["tracking_url"] == "https://track.example/X1"

    def test_other_carrier_has_no_tracking_link(self, make_order, order_service, transport, html_of):
        make_order()
        shipment = {"tracking_number": "LOCAL-7", "courier": "other"}
        result = order_service.transition("DB-1001", "shipped", shipping_data=shipment)
        assert result.order["shipping_metadata"]["tracking_url"] == ""
        body = html_of(transport.outbox[-1])
        assert "LOCAL-7" in body
        assert "Track Your Package" not in body

    def test_shipped_requires_tracking_number(self, make_order, order_service):
        make_order()
        with pytest.raises(ValidationError):
            order_service.transition("DB-1001", "shipped", shipping_data={"courier": "australia-post"})
        order = order_service.get_order("DB-1001")
        assert order["status"] == "pending"
        assert order["shipping_metadata"] is None

    def test_shipping_data_only_for_shipped(self, make_order, order_service):
        make_order()
        with pytest.raises(ValidationError):
            order_service.transition("DB-1001", "processing", shipping_data=AUSPOST_SHIPMENT)

    def test_backward_move_is_rejected(self, make_order, order_service):
        make_order()
        order_service.transition("DB-1001", "processing")
        with pytest.raises(ValidationError):
            order_service.transition("DB-1001", "pending")
        assert order_service.get_order("DB-1001")["status"] == "processing"

    def test_unknown_status(self, make_order, order_service):
        make_order()
        with pytest.raises(ValidationError):
            order_service.transition("DB-1001", "lost")

    def test_unknown_order(self, order_service):
        with pytest.raises(NotFoundError):
            order_service.transition("DB-9999", "processing")

    def test_metadata_carried_to_delivered(self, make_order, order_service):
        make_order()
        order_service.transition("DB-1001", "shipped", shipping_data=AUSPOST_SHIPMENT)
        result = order_service.transition("DB-1001", "delivered")
        assert result.order["shipping_metadata"]["tracking_number"] == "AP123456789"

    @pytest.mark.parametrize("steps", [[], ["processing"]])
    def test_delivered_needs_shipping_first(self, make_order, order_service, steps):
        make_order()
        for step in steps:
            order_service.transition("DB-1001", step)
        with pytest.raises(ValidationError, match="shipped before"):
            order_service.transition("DB-1001", "delivered")
        order = order_service.get_order("DB-1001")
        assert order["status"] == (steps[-1] if steps else "pending")
        assert order["shipping_metadata"] is None

    def test_metadata_present_whenever_shipped_or_delivered(self, make_order, order_service):
        make_order()
        for status in ("processing", "shipped", "delivered"):
            shipping = AUSPOST_SHIPMENT if status == "shipped" else None
            order = order_service.transition("DB-1001", status, shipping_data=shipping).order
            assert (order["shipping_metadata"] is not None) == (status in ("shipped", "delivered"))

    @pytest.mark.parametrize("status", [3, None, ["shipped"]])
    def test_non_text_status_is_rejected(self, make_order, order_service, status):
        make_order()
        with pytest.raises(ValidationError):
            order_service.transition("DB-1001", status)

    def test_same_status_resends(self, make_order, order_service, transport):
        make_order()
        order_service.transition("DB-1001", "processing")
        sent = len(transport.outbox)
        result = order_service.transition("DB-1001", "processing")
        assert result.email_sent is True
        assert len(transport.outbox) == sent + 1

    def test_notification_failure_does_not_undo_transition(self, make_order, order_service, transport, notification_log):
        make_order()
        transport.fail_with = "SMTP connection to smtp.decorabake.test:587 failed: refused"

        result = order_service.transition("DB-1001", "shipped", shipping_data=AUSPOST_SHIPMENT)

        assert result.order["status"] == "shipped"
        assert result.email_sent is False
        assert "refused" in result.email_error
        assert result.to_dict()["notification_status"] == "failed"
        assert order_service.get_order("DB-1001")["status"] == "shipped"
        failed = notification_log.list_records(status="failed", reference="DB-1001")
        assert failed[0].event == "order.shipped"

    def test_notify_false_skips_email(self, make_order, order_service, transport):
        make_order()
        sent = len(transport.outbox)
        result = order_service.transition("DB-1001", "processing", notify=False)
        assert result.email_sent is False
        assert result.email_error is None
        assert len(transport.outbox) == sent

    def test_shipping_toggle_off_disables_only_shipped(self, make_order, order_service, settings_store):
        make_order()
        settings_store.update({"SEND_SHIPPING_NOTIFICATION": False})
        shipped = order_service.transition("DB-1001", "shipped", shipping_data=AUSPOST_SHIPMENT)
        delivered = order_service.transition("DB-1001", "delivered")
        assert shipped.to_dict()["notification_status"] == "disabled"
        assert delivered.email_sent is True


class TestCustomerActions:
    def test_cancel_while_pending(self, make_order, order_service, transport):
        make_order()
        result = order_service.cancel_by_customer("DB-1001")
        assert result.order["status"] == "cancelled"
        assert transport.outbox[-1]["Subject"] == "Order Cancelled - DB-1001"

    def test_cannot_cancel_after_shipping(self, make_order, order_service):
        make_order()
        order_service.transition("DB-1001", "shipped", shipping_data=AUSPOST_SHIPMENT)
        with pytest.raises(ValidationError):
            order_service.cancel_by_customer("DB-1001")

    def test_update_shipping_address(self, make_order, order_service, transport):
        make_order()
        sent = len(transport.outbox)
        order = order_service.update_shipping_address(
            "DB-1001", {"address": "1 George St", "city": "Brisbane", "state": "QLD", "postcode": "4000"}
        )
        assert order["shipping"]["city"] == "Brisbane"
        assert len(transport.outbox) == sent

    def test_address_locked_after_shipping(self, make_order, order_service):
        make_order()
        order_service.transition("DB-1001", "shipped", shipping_data=AUSPOST_SHIPMENT)
        with pytest.raises(ValidationError):
            order_service.update_shipping_address("DB-1001", {"address": "x", "city": "y", "postcode": "1"})


class TestQueries:
    def test_list_orders_filters_and_pages(self, make_order, order_service):
        for _ in range(3):
            make_order(order_code=None)
        order_service.transition("ORD-0002", "processing")

        page = order_service.list_orders(page=1, page_size=2)
        assert page["total"] == 3
        assert len(page["items"]) == 2

        processing = order_service.list_orders(status="processing")
        assert [o["order_code"] for o in processing["items"]] == ["ORD-0002"]

    def test_customer_orders_match_email_case_insensitively(self, make_order, order_service):
        make_order()
        orders = order_service.list_customer_orders("JANE.CITIZEN@example.com")
        assert [o["order_code"] for o in orders] == ["DB-1001"]
