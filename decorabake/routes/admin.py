"""Operator console API routes."""

from __future__ import annotations

import io
from datetime import date

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from ..common.errors import ValidationError
from ..common.services.logging import log_event
from ..common.utils.validators import validate_currency
from ..services import DEFAULT_SETTINGS


admin_bp = Blueprint("decorabake_admin", __name__, url_prefix="/admin/api")


def _components() -> dict:
    return current_app.extensions["decorabake_components"]


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _flag(value, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in {"0", "false", "no", "off", ""}
    return bool(value)


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name)


# --- Orders ---

@admin_bp.get("/orders")
def list_orders():
    page = _components()["order_service"].list_orders(
        status=request.args.get("status") or None,
        page=_int_arg("page", 1),
        page_size=_int_arg("page_size", 20),
    )
    return jsonify({"status": "ok", **page})


@admin_bp.get("/orders/<order_code>")
def get_order(order_code: str):
    return jsonify({"status": "ok", "order": _components()["order_service"].get_order(order_code)})


@admin_bp.put("/orders/<order_code>/status")
def update_order_status(order_code: str):
    """Move an order along its lifecycle; the response says whether the customer was emailed."""
    payload = _payload()
    result = _components()["order_service"].transition(
        order_code,
        payload.get("status"),
        shipping_data=payload.get("shipping_data"),
        notify=_flag(payload.get("send_email")),
    )
    return jsonify({"status": "ok", **result.to_dict()})


# --- Refunds ---

@admin_bp.get("/refunds")
def list_refunds():
    refunds = _components()["refund_service"].list_refunds(status=request.args.get("status") or None)
    return jsonify({"status": "ok", "refunds": refunds})


@admin_bp.get("/refunds/<refund_code>")
def get_refund(refund_code: str):
    return jsonify({"status": "ok", "refund": _components()["refund_service"].get_refund(refund_code)})


@admin_bp.put("/refunds/<refund_code>")
def update_refund(refund_code: str):
    payload = _payload()
    result = _components()["refund_service"].set_status(
        refund_code,
        payload.get("status"),
        admin_notes=payload.get("admin_notes"),
        notify=_flag(payload.get("send_email")),
    )
    return jsonify({"status": "ok", **result.to_dict()})


@admin_bp.post("/refunds/<refund_code>/messages")
def operator_message(refund_code: str):
    payload = _payload()
    result = _components()["refund_service"].append_message(
        refund_code, "operator", payload.get("body"), notify=_flag(payload.get("send_email"))
    )
    return jsonify({"status": "ok", **result.to_dict()}), 201


# --- Reports ---

def _sales_report() -> dict:
    return _components()["reporting"].sales_report(request.args.get("start"), request.args.get("end"))


def _export_name(report: dict, ext: str) -> str:
    return f"sales-report-{report.get('end') or date.today().isoformat()}.{ext}"


@admin_bp.get("/reports/sales")
def sales_report():
    return jsonify({"status": "ok", "report": _sales_report()})


@admin_bp.get("/reports/sales.csv")
def sales_report_csv():
    report = _sales_report()
    body = _components()["reporting"].export_csv(report)
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{_export_name(report, "csv")}"'},
    )


@admin_bp.get("/reports/sales.pdf")
def sales_report_pdf():
    report = _sales_report()
    settings = _components()["settings_store"].load()
    pdf = _components()["reporting"].export_pdf(report, title=f"{settings.site_name} Sales Report")
    return send_file(
        io.BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=_export_name(report, "pdf"),
    )


# --- Settings & email ---

@admin_bp.get("/settings")
def get_settings():
    settings = _components()["settings_store"].load()
    return jsonify({"status": "ok", "settings": settings.to_mapping(mask_secrets=True)})


@admin_bp.put("/settings")
def update_settings():
    changes = _payload().get("settings") or {}
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("no settings supplied", field="settings")
    unknown = sorted(k for k in changes if k not in DEFAULT_SETTINGS)
    if unknown:
        raise ValidationError(f"unknown settings: {', '.join(unknown)}", field="settings")
    if "CURRENCY" in changes:
        changes["CURRENCY"] = validate_currency(changes["CURRENCY"])

    settings = _components()["settings_store"].update(changes)
    log_event("info", "settings.updated", keys=sorted(changes))
    return jsonify({"status": "ok", "settings": settings.to_mapping(mask_secrets=True)})


@admin_bp.post("/email/test")
def test_email():
    result = _components()["dispatcher"].test_connection()
    return jsonify({"status": "ok" if result["success"] else "error", **result})


@admin_bp.get("/notifications")
def list_notifications():
    repo = _components()["notification_log"]
    records = repo.list_records(
        limit=_int_arg("limit", 50),
        offset=_int_arg("offset", 0),
        status=request.args.get("status") or None,
        reference=request.args.get("reference") or None,
    )
    return jsonify(
        {"status": "ok", "records": [r.to_dict() for r in records], "total": repo.count_records()}
    )
