"""Tests for the sales report and its exports."""

from datetime import datetime, timedelta

import pytest

from decorabake.common.errors import ValidationError


@pytest.fixture
def three_orders(make_order, order_service):
    make_order(order_code="DB-1001")
    make_order(order_code="DB-1002", total=100.00)
    make_order(order_code="DB-1003", total=50.00)
    order_service.transition("DB-1003", "cancelled")


def test_totals_exclude_cancelled(three_orders, reporting):
    report = reporting.sales_report()
    assert report["total_orders"] == 2
    assert report["total_sales"] == 258.95
    assert report["average_order"] == 129.48
    assert {o["order_code"] for o in report["orders"]} == {"DB-1001", "DB-1002"}


def test_date_range_is_inclusive(three_orders, reporting):
    today = datetime.utcnow().date()
    assert reporting.sales_report(today.isoformat(), today.isoformat())["total_orders"] == 2
    tomorrow = today + timedelta(days=1)
    assert reporting.sales_report(start=tomorrow.isoformat())["total_orders"] == 0


def test_empty_report(reporting):
    report = reporting.sales_report()
    assert report == {
        "start": None,
        "end": None,
        "total_sales": 0.0,
        "total_orders": 0,
        "average_order": 0.0,
        "orders": [],
    }


@pytest.mark.parametrize("start,end", [("yesterday", None), ("2026-02-10", "2026-02-01")])
def test_bad_ranges(reporting, start, end):
    with pytest.raises(ValidationError):
        reporting.sales_report(start, end)


def test_csv_export(three_orders, reporting):
    text = reporting.export_csv(reporting.sales_report())
    lines = text.strip().split("\n")
    assert lines[0] == '"Order ID","Customer","Total","Status","Date"'
    assert len(lines) == 3
    assert any(line.startswith('"DB-1001","Jane Citizen","158.95","pending",') for line in lines)


def test_pdf_export(three_orders, reporting):
    pdf = reporting.export_pdf(reporting.sales_report())
    assert pdf.startswith(b"%PDF")


def test_pdf_export_spans_pages(reporting):
    report = {
        "start": None,
        "end": None,
        "total_sales": 0.0,
        "total_orders": 0,
        "average_order": 0.0,
        "orders": [
            {"order_code": f"ORD-{i:04d}", "customer": {"email": "x@example.com"}, "total": 1.0, "status": "pending"}
            for i in range(120)
        ],
    }
    pdf = reporting.export_pdf(report)
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > len(reporting.export_pdf(dict(report, orders=[])))
