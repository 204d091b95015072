"""Customer and checkout API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from ..common.errors import NotFoundError, StoreError, ValidationError
from ..common.services.email_templates import NotificationEvent
from ..common.services.logging import log_event
from ..common.utils.validators import normalize_email


api_bp = Blueprint("decorabake_api", __name__, url_prefix="/api")


def _components() -> Dict[str, Any]:
    return current_app.extensions["decorabake_components"]


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@api_bp.app_errorhandler(NotFoundError)
def handle_not_found(exc: NotFoundError):
    return jsonify({"status": "error", "message": str(exc)}), 404


@api_bp.app_errorhandler(ValidationError)
def handle_validation(exc: ValidationError):
    body = {"status": "error", "message": str(exc)}
    if exc.field:
        body["field"] = exc.field
    return jsonify(body), 400


@api_bp.app_errorhandler(StoreError)
def handle_store_error(exc: StoreError):
    log_event("error", "request.failed", error=str(exc))
    return jsonify({"status": "error", "message": str(exc)}), 500


# --- Orders ---

@api_bp.post("/orders")
def create_order():
    """Checkout hand-off: the storefront has already priced and paid the order."""
    result = _components()["order_service"].create_order(_payload())
    return jsonify({"status": "ok", **result}), 201


@api_bp.get("/orders/<order_code>")
def get_order(order_code: str):
    return jsonify({"status": "ok", "order": _components()["order_service"].get_order(order_code)})


@api_bp.put("/orders/<order_code>/cancel")
def cancel_order(order_code: str):
    result = _components()["order_service"].cancel_by_customer(order_code)
    return jsonify({"status": "ok", **result.to_dict()})


@api_bp.put("/orders/<order_code>/shipping")
def update_shipping(order_code: str):
    order = _components()["order_service"].update_shipping_address(order_code, _payload())
    return jsonify({"status": "ok", "order": order})


# --- Customers ---

@api_bp.get("/customers/<email>/orders")
def customer_orders(email: str):
    orders = _components()["order_service"].list_customer_orders(email)
    return jsonify({"status": "ok", "orders": orders})


@api_bp.get("/customers/<email>/refunds")
def customer_refunds(email: str):
    refunds = _components()["refund_service"].list_customer_refunds(email)
    return jsonify({"status": "ok", "refunds": refunds})


@api_bp.post("/customers/welcome")
def welcome_customer():
    """Sent by the account service right after registration."""
    payload = _payload()
    email = normalize_email(payload.get("email"))
    if not email:
        raise ValidationError("email is required", field="email")
    customer = {"email": email, "first_name": payload.get("first_name"), "last_name": payload.get("last_name")}
    result = _components()["dispatcher"].send(NotificationEvent.WELCOME, email, {"customer": customer})
    log_event("info", "customer.welcomed", email=email, notification_status=result.status.value)
    return jsonify({"status": "ok", "notification": result.to_dict()})


# --- Refunds ---

@api_bp.post("/refunds")
def create_refund():
    payload = _payload()
    result = _components()["refund_service"].create_refund(
        order_code=payload.get("order_code"),
        reason=payload.get("reason"),
        amount=payload.get("amount"),
    )
    return jsonify({"status": "ok", **result.to_dict()}), 201


@api_bp.get("/refunds/<refund_code>")
def get_refund(refund_code: str):
    return jsonify({"status": "ok", "refund": _components()["refund_service"].get_refund(refund_code)})


@api_bp.post("/refunds/<refund_code>/messages")
def customer_message(refund_code: str):
    result = _components()["refund_service"].append_message(refund_code, "customer", _payload().get("body"))
    return jsonify({"status": "ok", **result.to_dict()}), 201


# --- Promo codes ---

@api_bp.post("/promo-codes/validate")
def validate_promo():
    payload = _payload()
    if not (payload.get("code") or "").strip():
        raise ValidationError("code is required", field="code")
    quote = _components()["ledger"].validate_promo(payload.get("code"), payload.get("order_total"))
    return jsonify({"status": "ok", **quote})
