# Overview: Line-item extraction from schema-versioned order payloads.

"""
Line Item Extraction

WHY: order.line_items has two historical shapes:
- legacy: a bare JSON array of items
- current: an object {"items": [...]}

Both map onto one canonical LineItem list. Anything else is rejected
explicitly instead of defaulting to an empty order.

Every product identifier must match the vendor's ASIN format before the
order may be submitted. All offending identifiers are reported at once.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import FulfillmentError


# 10 uppercase alphanumerics; most catalog ASINs carry the reserved "B0" prefix
ASIN_PATTERN = re.compile(r"^(?:B0[0-9A-Z]{8}|[0-9A-Z]{10})$")

PRODUCT_ID_KEYS = ("product_id", "zinc_product_id", "asin", "id")


class LineItemExtractionError(FulfillmentError):
    """Order line items are missing, malformed, or carry invalid identifiers."""

    def __init__(
        self,
        message: str,
        *,
        error_code: str,
        invalid_identifiers: list[str] | None = None,
        malformed_items: list[str] | None = None,
    ):
        self.error_code = error_code
        self.invalid_identifiers = list(invalid_identifiers or [])
        self.malformed_items = list(malformed_items or [])
        super().__init__(message)


@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    unit_price_cents: int
    is_gift: bool = False
    gift_message: str | None = None
    recipient_assignment: dict | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


def is_valid_product_id(product_id: str) -> bool:
    return bool(ASIN_PATTERN.fullmatch(product_id or ""))


def _unwrap(raw: Any) -> list:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise LineItemExtractionError(
                "Line items payload is not valid JSON",
                error_code="unparseable_line_items",
            )

    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("items"), list):
        return raw["items"]

    shape = "null" if raw is None else type(raw).__name__
    raise LineItemExtractionError(
        f"Unrecognized line items shape: {shape}",
        error_code="unrecognized_line_items_shape",
    )


def _product_id(item: dict) -> str:
    for key in PRODUCT_ID_KEYS:
        value = item.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _quantity(item: dict) -> int:
    raw = item.get("quantity", 1)
    if raw is None:
        return 1
    if isinstance(raw, bool):
        raise ValueError("quantity must be an integer")
    if isinstance(raw, float) and not raw.is_integer():
        raise ValueError("quantity must be an integer")
    qty = int(raw)
    if qty <= 0:
        raise ValueError("quantity must be positive")
    return qty


def _price_cents(item: dict) -> int:
    for key in ("unit_price_cents", "price_cents"):
        if item.get(key) is not None:
            return int(item[key])
    for key in ("unit_price", "price", "max_price"):
        if item.get(key) is not None:
            try:
                dollars = Decimal(str(item[key]))
            except InvalidOperation:
                raise ValueError(f"{key} must be numeric")
            if not dollars.is_finite():
                raise ValueError(f"{key} must be a finite number")
            return int((dollars * 100).quantize(Decimal("1")))
    return 0


def extract_line_items(raw: Any) -> list[LineItem]:
    """
    Read an order's stored line items into canonical form.

    Returns:
        Non-empty list of LineItem, in stored order

    Raises:
        LineItemExtractionError: unrecognized shape, empty list, malformed item,
            or identifiers failing the ASIN pattern (all of them listed)
    """
    entries = _unwrap(raw)
    if not entries:
        raise LineItemExtractionError("Order has no line items", error_code="missing_line_items")

    items: list[LineItem] = []
    invalid: list[str] = []
    malformed: list[str] = []

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            malformed.append(f"Line item {index} is not an object")
            continue

        product_id = _product_id(entry)
        if not is_valid_product_id(product_id):
            invalid.append(product_id)

        try:
            quantity = _quantity(entry)
            unit_price_cents = _price_cents(entry)
        except (TypeError, ValueError, OverflowError) as exc:
            malformed.append(f"Line item {index} ({product_id or 'no id'}): {exc}")
            continue

        assignment = entry.get("recipient_assignment")
        items.append(LineItem(
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            is_gift=bool(entry.get("is_gift", False)),
            gift_message=(entry.get("gift_message") or None),
            recipient_assignment=assignment if isinstance(assignment, dict) else None,
        ))

    if malformed or invalid:
        problems = list(malformed)
        if invalid:
            shown = ", ".join(f'"{pid}"' if pid else '"<missing>"' for pid in invalid)
            problems.append(f"Invalid product identifiers: {shown}")
        raise LineItemExtractionError(
            "; ".join(problems),
            # Structural problems outrank identifier problems in the code
            error_code="malformed_line_item" if malformed else "invalid_product_identifiers",
            invalid_identifiers=invalid,
            malformed_items=malformed,
        )

    return items


def subtotal_cents(items: list[LineItem]) -> int:
    return sum(item.line_total_cents for item in items)
