# Overview: Shipping-address normalization across legacy field-name variants.

"""
Address Normalization

WHY: Orders written by different generations of the checkout store the
shipping address under different keys (flat legacy fields, camelCase,
zip_code vs postal_code). The vendor needs exactly one shape.

PRECEDENCE:
- A recipient override (gift orders) replaces the order-level address: gifts
  ship to the recipient, never to a mix of recipient and purchaser fields.
- Phone: recipient > order-level shipping > purchaser profile. Missing phone
  is a warning, not a failure.

ALIASES (first non-empty wins):
- postal_code: postal_code, zip_code, zipCode
- address_line1: address_line1, address, street
- address_line2: address_line2, addressLine2
- name: name, or first_name + last_name
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..errors import FulfillmentError


CANONICAL_FIELDS = (
    "name",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)

REQUIRED_FIELDS = ("name", "address_line1", "city", "state", "postal_code")

FIELD_ALIASES = {
    "name": ("name", "full_name", "recipient_name"),
    "address_line1": ("address_line1", "address", "street"),
    "address_line2": ("address_line2", "addressLine2"),
    "city": ("city",),
    "state": ("state",),
    "postal_code": ("postal_code", "zip_code", "zipCode"),
    "country": ("country",),
    "phone": ("phone", "phone_number", "phoneNumber"),
}

DEFAULT_COUNTRY = "US"


class AddressValidationError(FulfillmentError):
    """Normalized address is missing required fields."""

    error_code = "incomplete_address"

    def __init__(self, missing_fields: list[str], message: str | None = None):
        self.missing_fields = list(missing_fields)
        super().__init__(
            message
            or f"Incomplete shipping address. Missing required fields: {', '.join(self.missing_fields)}"
        )


class UnrecognizedAddressError(AddressValidationError):
    """Stored address is neither a mapping nor a JSON object string."""

    error_code = "unrecognized_address_shape"

    def __init__(self, label: str, shape: str):
        super().__init__(list(REQUIRED_FIELDS), f"Unrecognized {label} shape: {shape}")


@dataclass
class NormalizedAddress:
    address: dict
    warnings: list[str] = field(default_factory=list)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, (str, int)):
        return ""
    return str(value).strip()


def _pick(raw: dict, canonical: str) -> str:
    for key in FIELD_ALIASES[canonical]:
        value = _clean(raw.get(key))
        if value:
            return value
    return ""


def _name_from_parts(raw: dict) -> str:
    first = _clean(raw.get("first_name") or raw.get("firstName"))
    last = _clean(raw.get("last_name") or raw.get("lastName"))
    return " ".join(part for part in (first, last) if part)


def _as_address_dict(raw: Any, label: str) -> dict:
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except ValueError:
            raise UnrecognizedAddressError(label, "unparseable string")
    if not isinstance(raw, dict):
        raise UnrecognizedAddressError(label, type(raw).__name__)
    return raw


def canonicalize(raw: dict) -> dict:
    """Map one raw address dict onto canonical keys (empty string when absent)."""
    result = {key: _pick(raw, key) for key in CANONICAL_FIELDS}
    if not result["name"]:
        result["name"] = _name_from_parts(raw)
    return result


def normalize_shipping_address(
    raw: Any,
    recipient_override: Any = None,
    profile_phone: str | None = None,
) -> NormalizedAddress:
    """
    Produce one canonical shipping address.

    Args:
        raw: Order-level shipping address (any historical shape, or None)
        recipient_override: Recipient shipping sub-object from a line item
        profile_phone: Purchaser's profile phone, last-resort fallback

    Returns:
        NormalizedAddress with canonical dict and soft warnings

    Raises:
        AddressValidationError: listing every missing required field
        UnrecognizedAddressError: if an input is neither a mapping nor a
            JSON object string
    """
    order_level = canonicalize(_as_address_dict(raw, "shipping address"))
    override_raw = _as_address_dict(recipient_override, "recipient address")

    if override_raw:
        # Recipient address replaces the purchaser's; only phone falls through
        merged = canonicalize(override_raw)
        merged["phone"] = merged["phone"] or order_level["phone"]
    else:
        merged = order_level

    warnings: list[str] = []

    if not merged["phone"]:
        fallback = _clean(profile_phone)
        if fallback:
            merged["phone"] = fallback
            warnings.append("Using purchaser profile phone for delivery notifications")
        else:
            warnings.append("No phone number available for delivery notifications")

    if not merged["country"]:
        merged["country"] = DEFAULT_COUNTRY

    missing = [key for key in REQUIRED_FIELDS if not merged[key]]
    if missing:
        raise AddressValidationError(missing)

    return NormalizedAddress(address=merged, warnings=warnings)


def find_recipient_override(items) -> dict | None:
    """
    Return the first recipient shipping override carried by a line item.

    Items are canonical LineItem objects (see line_item_service).
    """
    for item in items:
        assignment = item.recipient_assignment or {}
        if not isinstance(assignment, dict):
            continue
        shipping = assignment.get("shipping_address") or assignment.get("address")
        if isinstance(shipping, dict) and shipping:
            override = dict(shipping)
            # Recipient name on the assignment applies when the sub-object lacks one
            if not canonicalize(override)["name"]:
                name = _clean(assignment.get("name") or assignment.get("recipient_name"))
                if name:
                    override["name"] = name
            phone = _clean(assignment.get("phone"))
            if phone and not canonicalize(override)["phone"]:
                override["phone"] = phone
            return override
    return None
