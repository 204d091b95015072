from typing import Any, Dict


def _money(value: Any) -> float:
    return float(value or 0)


def _iso(value: Any):
    return value.isoformat() if value is not None else None


def to_order_dto(row: Any) -> Dict:
    shipped = bool(getattr(row, "tracking_number", None))
    return {
        "id": row.id,
        "order_code": row.order_code,
        "status": row.status,
        "items": row.items or [],
        "subtotal": _money(row.subtotal),
        "shipping_cost": _money(row.shipping_cost),
        "promo_code": row.promo_code,
        "promo_discount": _money(row.promo_discount),
        "total": _money(row.total),
        "currency": row.currency,
        "customer": {
            "email": row.customer_email,
            "first_name": row.customer_first_name,
            "last_name": row.customer_last_name,
            "phone": row.customer_phone,
        },
        "shipping": {
            "address": row.shipping_address,
            "city": row.shipping_city,
            "state": row.shipping_state,
            "postcode": row.shipping_postcode,
        },
        "shipping_metadata": {
            "tracking_number": row.tracking_number,
            "courier": row.courier,
            "tracking_url": row.tracking_url,
            "delivery_days": row.delivery_days,
        } if shipped else None,
        "payment_method": row.payment_method,
        "payment_status": row.payment_status,
        "notes": row.notes,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def to_refund_message_dto(row: Any) -> Dict:
    return {
        "seq": row.seq,
        "sender": row.sender,
        "body": row.body,
        "created_at": _iso(row.created_at),
    }


def to_refund_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "refund_code": row.refund_code,
        "order_code": row.order_code,
        "status": row.status,
        "amount": _money(row.amount),
        "reason": row.reason,
        "admin_notes": row.admin_notes,
        "customer": {
            "email": row.customer_email,
            "first_name": row.customer_first_name,
            "last_name": row.customer_last_name,
            "phone": row.customer_phone,
        },
        "messages": [to_refund_message_dto(m) for m in row.messages],
        "processed_at": _iso(row.processed_at),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def to_promo_dto(row: Any) -> Dict:
    return {
        "id": row.id,
        "code": row.code,
        "discount_type": row.discount_type,
        "discount_value": _money(row.discount_value),
        "min_order": _money(row.min_order),
        "usage_limit": int(row.usage_limit or 0),
        "usage_count": int(row.usage_count or 0),
        "expiry_date": _iso(row.expiry_date),
        "active": bool(row.active),
    }
