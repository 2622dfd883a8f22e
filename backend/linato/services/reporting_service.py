# Overview: Service-layer operations for reporting; read-only aggregate queries.

"""
Sales Reports

All reports cover one business day (BUSINESS_TIMEZONE) and exclude
cancelled orders. Pending orders are included: the day covers everything
rung up that was not voided.

Money is summed in SQL and re-quantized to 2 places on the way out.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderItem, Product, Category, CashierShift
from ..validation import NotFoundError, money, money_str
from linato.time_utils import business_date, business_day_bounds, to_utc_z
from .shift_service import cash_payments_total, get_shift, get_open_shift


def _tz() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def _report_day(day: date | None) -> date:
    return day or business_date(_tz())


def _day_filter(query, day: date):
    start, end = business_day_bounds(day, _tz())
    return query.filter(
        Order.created_at >= start,
        Order.created_at < end,
        Order.status != "cancelled",
    )


def daily_summary(day: date | None = None) -> dict:
    day = _report_day(day)
    row = _day_filter(
        db.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.subtotal), 0),
            func.coalesce(func.sum(Order.discount_amount), 0),
            func.coalesce(func.sum(Order.tax_amount), 0),
            func.coalesce(func.sum(Order.service_charge_amount), 0),
            func.coalesce(func.sum(Order.total), 0),
        ),
        day,
    ).one()

    count, gross, discounts, tax, service, net = row
    return {
        "date": day.isoformat(),
        "order_count": int(count or 0),
        "gross_sales": money_str(gross),
        "discounts": money_str(discounts),
        "tax": money_str(tax),
        "service_charge": money_str(service),
        "net_sales": money_str(net),
    }


def sales_by_product(day: date | None = None) -> list[dict]:
    day = _report_day(day)
    total_sales = func.sum(OrderItem.line_total).label("total_sales")
    rows = (
        _day_filter(
            db.session.query(
                OrderItem.product_id,
                OrderItem.name_snapshot,
                func.sum(OrderItem.qty).label("total_qty"),
                total_sales,
            ).join(Order, Order.id == OrderItem.order_id),
            day,
        )
        .group_by(OrderItem.product_id, OrderItem.name_snapshot)
        .order_by(total_sales.desc())
        .all()
    )
    return [
        {
            "product_id": r.product_id,
            "name_snapshot": r.name_snapshot,
            "total_qty": int(r.total_qty or 0),
            "total_sales": money_str(r.total_sales),
        }
        for r in rows
    ]


def sales_by_category(day: date | None = None) -> list[dict]:
    day = _report_day(day)
    total_sales = func.sum(OrderItem.line_total).label("total_sales")
    rows = (
        _day_filter(
            db.session.query(
                Category.id,
                Category.name,
                func.sum(OrderItem.qty).label("total_qty"),
                total_sales,
            )
            .select_from(OrderItem)
            .join(Order, Order.id == OrderItem.order_id)
            .join(Product, Product.id == OrderItem.product_id)
            .join(Category, Category.id == Product.category_id),
            day,
        )
        .group_by(Category.id, Category.name)
        .order_by(total_sales.desc())
        .all()
    )
    return [
        {
            "id": r.id,
            "name": r.name,
            "total_qty": int(r.total_qty or 0),
            "total_sales": money_str(r.total_sales),
        }
        for r in rows
    ]


def shift_report(shift_id: int | None = None, user_id: int | None = None) -> dict:
    """
    Live reconciliation for a shift (open or closed).

    For an open shift, discrepancy is computed against closing_cash 0 and
    only becomes meaningful once the drawer is counted.
    """
    shift: CashierShift | None
    if shift_id is not None:
        shift = get_shift(shift_id)
    else:
        shift = get_open_shift(user_id) if user_id is not None else None
        if shift is None:
            raise NotFoundError("No open shift found.")

    cash = cash_payments_total(shift.id)
    expected = money(cash + money(shift.opening_cash))
    return {
        "shift_id": shift.id,
        "user_id": shift.user_id,
        "opened_at": to_utc_z(shift.opened_at),
        "closed_at": to_utc_z(shift.closed_at),
        "opening_cash": money_str(shift.opening_cash),
        "closing_cash": money_str(shift.closing_cash),
        "cash_payments": money_str(cash),
        "expected_cash": money_str(expected),
        "discrepancy": money_str(money(shift.closing_cash) - expected),
    }
