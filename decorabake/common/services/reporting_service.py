import csv
import io
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Union

from PIL import Image, ImageDraw, ImageFont

from ..db.session import get_session
from ..errors import ValidationError
from ..models.order import Order
from ..utils.dto import to_order_dto


DateLike = Union[str, date, datetime, None]

CSV_HEADERS = ["Order ID", "Customer", "Total", "Status", "Date"]

# A4 at 150 dpi
PAGE_SIZE = (1240, 1754)
PAGE_MARGIN = 90
LINE_HEIGHT = 28


def _parse_day(value: DateLike, field: str) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", field=field)


class ReportingService:
    """Read-only sales aggregation for the operator dashboard and exports.

    Cancelled orders are excluded; both range ends are inclusive whole days.
    """

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    def sales_report(self, start: DateLike = None, end: DateLike = None) -> Dict:
        start_day = _parse_day(start, "start")
        end_day = _parse_day(end, "end")
        if start_day and end_day and start_day > end_day:
            raise ValidationError("start must not be after end", field="start")

        with self._session_factory() as session:
            q = session.query(Order).filter(Order.status != "cancelled")
            if start_day:
                q = q.filter(Order.created_at >= datetime.combine(start_day, time.min))
            if end_day:
                q = q.filter(Order.created_at < datetime.combine(end_day + timedelta(days=1), time.min))
            rows = q.order_by(Order.created_at.desc()).all()
            orders = [to_order_dto(r) for r in rows]
            total_sales = sum((Decimal(str(r.total or 0)) for r in rows), Decimal("0"))

        count = len(orders)
        average = (total_sales / count).quantize(Decimal("0.01")) if count else Decimal("0")
        return {
            "start": start_day.isoformat() if start_day else None,
            "end": end_day.isoformat() if end_day else None,
            "total_sales": float(total_sales),
            "total_orders": count,
            "average_order": float(average),
            "orders": orders,
        }

    @staticmethod
    def _row(order: Dict) -> List[str]:
        customer = order.get("customer") or {}
        name = " ".join(p for p in (customer.get("first_name"), customer.get("last_name")) if p)
        return [
            order["order_code"],
            name or customer.get("email") or "",
            f"{order['total']:.2f}",
            order["status"],
            order.get("created_at") or "",
        ]

    def export_csv(self, report: Dict) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for order in report["orders"]:
            writer.writerow(self._row(order))
        return buf.getvalue()

    def export_pdf(self, report: Dict, title: str = "Sales Report") -> bytes:
        font = ImageFont.load_default()
        lines = [
            title,
            f"Period: {report.get('start') or 'beginning'} to {report.get('end') or 'today'}",
            "",
            f"Total Sales: ${report['total_sales']:.2f}",
            f"Total Orders: {report['total_orders']}",
            f"Average Order: ${report['average_order']:.2f}",
            "",
            "  ".join(f"{h:<18}" for h in CSV_HEADERS),
        ]
        lines.extend("  ".join(f"{str(c)[:18]:<18}" for c in self._row(o)) for o in report["orders"])

        per_page = (PAGE_SIZE[1] - 2 * PAGE_MARGIN) // LINE_HEIGHT
        pages = []
        for offset in range(0, max(len(lines), 1), per_page):
            page = Image.new("RGB", PAGE_SIZE, "white")
            draw = ImageDraw.Draw(page)
            for i, line in enumerate(lines[offset:offset + per_page]):
                draw.text((PAGE_MARGIN, PAGE_MARGIN + i * LINE_HEIGHT), line, fill="black", font=font)
            pages.append(page)

        out = io.BytesIO()
        pages[0].save(out, format="PDF", resolution=150.0, save_all=True, append_images=pages[1:])
        return out.getvalue()
