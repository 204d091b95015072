"""Transactional email bodies.

Every ``NotificationEvent`` member has exactly one renderer; the registry is
checked when the module is imported so a new event can't silently fall back
to another event's content.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from jinja2 import Environment, PackageLoader, ChainableUndefined, select_autoescape


class NotificationEvent(str, Enum):
    ORDER_PENDING = "order.pending"
    ORDER_PROCESSING = "order.processing"
    ORDER_SHIPPED = "order.shipped"
    ORDER_DELIVERED = "order.delivered"
    ORDER_CANCELLED = "order.cancelled"
    REFUND_PENDING = "refund.pending"
    REFUND_REVIEWING = "refund.reviewing"
    REFUND_APPROVED = "refund.approved"
    REFUND_DENIED = "refund.denied"
    REFUND_PROCESSED = "refund.processed"
    REFUND_MESSAGE = "refund.message"
    ORDER_CONFIRMATION = "order.confirmation"
    WELCOME = "welcome"
    ADMIN_NEW_ORDER = "admin.new_order"
    ADMIN_NEW_REFUND = "admin.new_refund"

    @classmethod
    def for_order_status(cls, status: str) -> "NotificationEvent":
        return cls(f"order.{status}")

    @classmethod
    def for_refund_status(cls, status: str) -> "NotificationEvent":
        return cls(f"refund.{status}")


# settings attribute that must be true for the event to be sent
FEATURE_TOGGLES: Dict[NotificationEvent, str] = {
    NotificationEvent.ORDER_CONFIRMATION: "send_order_confirmation",
    NotificationEvent.WELCOME: "send_welcome_email",
    NotificationEvent.ORDER_SHIPPED: "send_shipping_notification",
    NotificationEvent.ADMIN_NEW_ORDER: "send_admin_order_notification",
    NotificationEvent.ADMIN_NEW_REFUND: "send_admin_refund_notification",
}


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    html: str


@dataclass(frozen=True)
class StatusContent:
    subject: str
    icon: str
    title: str
    message: str
    color: str


ORDER_STATUS_CONTENT: Dict[NotificationEvent, StatusContent] = {
    NotificationEvent.ORDER_PENDING: StatusContent(
        "Order Received - {code}", "📋", "Order Received!",
        "Thank you for your order! We've received it and will begin processing soon.", "#E65100",
    ),
    NotificationEvent.ORDER_PROCESSING: StatusContent(
        "Order Processing - {code}", "⚙️", "Your Order is Being Prepared!",
        "Great news! We're now preparing your order. We'll notify you when it ships.", "#1565C0",
    ),
    NotificationEvent.ORDER_SHIPPED: StatusContent(
        "Order Shipped! - {code}", "📦", "Your Order is On Its Way!",
        "Exciting news! Your order has been shipped and is on its way to you.", "#2E7D32",
    ),
    NotificationEvent.ORDER_DELIVERED: StatusContent(
        "Order Delivered - {code}", "✅", "Order Delivered!",
        "Your order has been delivered! We hope you love your items.", "#1B5E20",
    ),
    NotificationEvent.ORDER_CANCELLED: StatusContent(
        "Order Cancelled - {code}", "❌", "Order Cancelled",
        "Your order has been cancelled. If you have any questions, please contact us.", "#C62828",
    ),
}

REFUND_STATUS_CONTENT: Dict[NotificationEvent, StatusContent] = {
    NotificationEvent.REFUND_PENDING: StatusContent(
        "Refund Request Received - {code}", "📋", "Refund Request Received",
        "We've received your refund request and will review it shortly.", "#E65100",
    ),
    NotificationEvent.REFUND_REVIEWING: StatusContent(
        "Refund Under Review - {code}", "🔍", "Refund Under Review",
        "Our team is currently reviewing your refund request. We'll update you soon.", "#1565C0",
    ),
    NotificationEvent.REFUND_APPROVED: StatusContent(
        "Refund Approved! - {code}", "✅", "Refund Approved!",
        "Great news! Your refund request has been approved. We'll process it shortly.", "#2E7D32",
    ),
    NotificationEvent.REFUND_DENIED: StatusContent(
        "Refund Request Update - {code}", "❌", "Refund Request Denied",
        "Unfortunately, we were unable to approve your refund request. Please see below for details.", "#C62828",
    ),
    NotificationEvent.REFUND_PROCESSED: StatusContent(
        "Refund Processed - {code}", "💰", "Refund Processed!",
        "Your refund of ${amount} {currency} has been processed. It may take 3-5 business days to appear in your account.",
        "#1B5E20",
    ),
}


def _money(value: Any) -> str:
    try:
        return f"{float(value or 0):.2f}"
    except (TypeError, ValueError):
        return "0.00"


def _long_date(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return f"{value.day} {value:%B %Y}"


def _build_env() -> Environment:
    env = Environment(
        loader=PackageLoader("decorabake", "templates/email"),
        autoescape=select_autoescape(["html"]),
        undefined=ChainableUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["money"] = _money
    env.filters["long_date"] = _long_date
    return env


_env = _build_env()

Renderer = Callable[[NotificationEvent, Any, Dict[str, Any]], RenderedMessage]
_RENDERERS: Dict[NotificationEvent, Renderer] = {}


def _renders(*events: NotificationEvent):
    def register(fn: Renderer) -> Renderer:
        for event in events:
            if event in _RENDERERS:
                raise RuntimeError(f"duplicate renderer for {event.value}")
            _RENDERERS[event] = fn
        return fn

    return register


def _first_name(customer: Optional[Dict[str, Any]]) -> str:
    customer = customer or {}
    return customer.get("first_name") or customer.get("name") or "there"


def _context(settings, **extra) -> Dict[str, Any]:
    ctx = {
        "site_name": settings.site_name or "DecoraBake",
        "site_url": settings.site_url,
        "currency": settings.currency or "AUD",
        "contact_email": settings.contact_email or "support@decorabake.com.au",
        "contact_phone": settings.contact_phone or "",
        "store_address": settings.address or "Sydney, Australia",
    }
    ctx.update(extra)
    return ctx


@_renders(*ORDER_STATUS_CONTENT)
def _render_order_status(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    order = data["order"]
    content = ORDER_STATUS_CONTENT[event]
    shipping = data.get("shipping") if event is NotificationEvent.ORDER_SHIPPED else None
    html = _env.get_template("order_status.html").render(
        **_context(
            settings,
            content=content,
            status=event.value.split(".", 1)[1],
            order=order,
            customer_name=_first_name(order.get("customer")),
            tracking=shipping if shipping and shipping.get("tracking_number") else None,
        )
    )
    return RenderedMessage(content.subject.format(code=order["order_code"]), html)


@_renders(*REFUND_STATUS_CONTENT)
def _render_refund_status(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    refund = data["refund"]
    content = REFUND_STATUS_CONTENT[event]
    message = content.message.format(amount=_money(refund.get("amount")), currency=settings.currency or "AUD")
    html = _env.get_template("refund_status.html").render(
        **_context(
            settings,
            content=content,
            message=message,
            status=event.value.split(".", 1)[1],
            refund=refund,
            customer_name=_first_name(refund.get("customer")),
        )
    )
    return RenderedMessage(content.subject.format(code=refund["refund_code"]), html)


@_renders(NotificationEvent.REFUND_MESSAGE)
def _render_refund_message(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    refund = data["refund"]
    html = _env.get_template("refund_message.html").render(
        **_context(
            settings,
            refund=refund,
            message=data["message"],
            account_url=f"{settings.site_url}/account",
            customer_name=_first_name(refund.get("customer")),
        )
    )
    return RenderedMessage(f"New Message - Refund {refund['refund_code']}", html)


@_renders(NotificationEvent.ORDER_CONFIRMATION)
def _render_order_confirmation(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    order = data["order"]
    html = _env.get_template("order_confirmation.html").render(
        **_context(settings, order=order, customer_name=_first_name(order.get("customer")))
    )
    return RenderedMessage(f"Order Confirmed: {order['order_code']}", html)


@_renders(NotificationEvent.WELCOME)
def _render_welcome(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    site_name = settings.site_name or "DecoraBake"
    html = _env.get_template("welcome.html").render(
        **_context(
            settings,
            customer_name=_first_name(data.get("customer")),
            free_shipping_threshold=settings.free_shipping_threshold or 149,
            shop_url=f"{settings.site_url}/products",
        )
    )
    return RenderedMessage(f"Welcome to {site_name}! 🎂", html)


@_renders(NotificationEvent.ADMIN_NEW_ORDER)
def _render_admin_new_order(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    order = data["order"]
    html = _env.get_template("admin_new_order.html").render(
        **_context(settings, order=order, console_url=f"{settings.site_url}/admin/orders")
    )
    return RenderedMessage(f"🛒 New Order #{order['order_code']} - ${_money(order.get('total'))}", html)


@_renders(NotificationEvent.ADMIN_NEW_REFUND)
def _render_admin_new_refund(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    refund = data["refund"]
    html = _env.get_template("admin_new_refund.html").render(
        **_context(settings, refund=refund, console_url=f"{settings.site_url}/admin/refunds")
    )
    return RenderedMessage(
        f"⚠️ New Refund Request - {refund['refund_code']} - ${_money(refund.get('amount'))}", html
    )


_missing = [e.value for e in NotificationEvent if e not in _RENDERERS]
if _missing:
    raise RuntimeError(f"notification events without a renderer: {', '.join(_missing)}")


def render(event: NotificationEvent, settings, data: Dict[str, Any]) -> RenderedMessage:
    return _RENDERERS[NotificationEvent(event)](NotificationEvent(event), settings, data)
