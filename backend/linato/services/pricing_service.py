# Overview: Pure money calculations for order totals; no database access.

"""
Order Pricing

WHY: Totals must be reproducible to the cent. The same function runs on
order creation and on every edit (full recompute, never incremental).

ROUNDING: Every intermediate step is rounded to 2 places, half-up, in the
order below. Rounding only at the end would drift from printed receipts.

    1. line_subtotal = round(price * qty)          subtotal = sum(line_subtotal)
    2. item_discounts = sum(line discount)
    3. discount_total = round(item_discounts + order discount)
    4. net_base = max(round(subtotal - discount_total), 0)
    5. service_charge_amount = round(net_base * service_rate / 100)
    6. tax_amount = round(net_base * tax_rate / 100)
    7. total = round(net_base + service + tax + rounding)

The clamp at step 4 is the only clamp; rounding may still pull a total
below net_base.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from ..validation import money


ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CartLine:
    price: Decimal
    qty: int
    discount_amount: Decimal = ZERO


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    service_charge_rate: Decimal
    service_charge_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    rounding: Decimal
    total: Decimal

    def as_columns(self) -> dict:
        """Order column values, ready for Order(**totals.as_columns())."""
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "service_charge_rate": self.service_charge_rate,
            "service_charge_amount": self.service_charge_amount,
            "tax_rate": self.tax_rate,
            "tax_amount": self.tax_amount,
            "rounding": self.rounding,
            "total": self.total,
        }


def line_subtotal(price: Decimal, qty: int) -> Decimal:
    return money(money(price) * qty)


def line_total(price: Decimal, qty: int, discount_amount: Decimal = ZERO) -> Decimal:
    return money(line_subtotal(price, qty) - money(discount_amount))


def calculate_totals(
    lines: Iterable[CartLine],
    *,
    discount_amount: Decimal = ZERO,
    service_charge_rate: Decimal = ZERO,
    tax_rate: Decimal = ZERO,
    rounding: Decimal = ZERO,
) -> Totals:
    """Compute an itemized total for a cart. Pure and deterministic."""
    subtotal = ZERO
    item_discounts = ZERO
    for line in lines:
        subtotal += line_subtotal(line.price, line.qty)
        item_discounts += money(line.discount_amount)

    discount_total = money(item_discounts + money(discount_amount))
    net_base = max(money(subtotal - discount_total), ZERO)

    service_rate = money(service_charge_rate)
    tax = money(tax_rate)
    service_amount = money(net_base * service_rate / HUNDRED)
    tax_amount = money(net_base * tax / HUNDRED)
    rounding_amount = money(rounding)
    total = money(net_base + service_amount + tax_amount + rounding_amount)

    return Totals(
        subtotal=money(subtotal),
        discount_amount=discount_total,
        service_charge_rate=service_rate,
        service_charge_amount=service_amount,
        tax_rate=tax,
        tax_amount=tax_amount,
        rounding=rounding_amount,
        total=total,
    )


def build_line_items(items: Iterable[Mapping], products: Mapping[int, object]) -> list[dict]:
    """
    Turn validated cart items into OrderItem column values.

    name_snapshot and price are copied from the product now; later product
    edits never touch them.

    Args:
        items: dicts with product_id, qty, discount_amount, notes
        products: product id -> Product (anything with .id, .name, .price)
    """
    payload = []
    for item in items:
        product = products[item["product_id"]]
        price = money(product.price)
        qty = int(item["qty"])
        discount = money(item.get("discount_amount"))
        payload.append({
            "product_id": product.id,
            "name_snapshot": product.name,
            "price": price,
            "qty": qty,
            "discount_amount": discount,
            "notes": item.get("notes"),
            "line_total": line_total(price, qty, discount),
        })
    return payload


def cart_lines(line_items: Iterable[Mapping]) -> list[CartLine]:
    return [
        CartLine(price=li["price"], qty=li["qty"], discount_amount=li["discount_amount"])
        for li in line_items
    ]
