from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger("clerk.tools")

SORT_CHOICES = ("price_asc", "price_desc", "rating")

TOOL_DECLARATIONS: List[Dict[str, Any]] = [
    {
        "name": "search_products",
        "description": "Find products from inventory using semantic intent like occasions, climate, style, budget.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "query": {"type": "STRING"},
                "category": {"type": "STRING"},
                "maxPrice": {"type": "NUMBER"},
                "minRating": {"type": "NUMBER"},
                "limit": {"type": "NUMBER"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "check_inventory",
        "description": "Check stock and optional color availability for a product.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "productId": {"type": "NUMBER"},
                "productName": {"type": "STRING"},
                "color": {"type": "STRING"},
            },
        },
    },
    {
        "name": "add_to_cart",
        "description": "Add a chosen product to the cart.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "productId": {"type": "NUMBER"},
                "quantity": {"type": "NUMBER"},
            },
            "required": ["productId"],
        },
    },
    {
        "name": "sort_products",
        "description": "Update storefront sorting for vibe filtering or cheaper/top-rated options.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "sortBy": {"type": "STRING", "enum": list(SORT_CHOICES)},
            },
            "required": ["sortBy"],
        },
    },
    {
        "name": "apply_coupon",
        "description": "Negotiate and generate a unique coupon code based on the shopper's reason and tone.",
        "parameters": {
            "type": "OBJECT",
            "properties": {
                "reason": {"type": "STRING"},
            },
            "required": ["reason"],
        },
    },
]


@dataclass(frozen=True)
class SearchProductsArgs:
    query: str = ""
    category: Optional[str] = None
    max_price: Optional[float] = None
    min_rating: Optional[float] = None
    limit: int = 4


@dataclass(frozen=True)
class CheckInventoryArgs:
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    color: Optional[str] = None


@dataclass(frozen=True)
class AddToCartArgs:
    product_id: Optional[int] = None
    quantity: int = 1


@dataclass(frozen=True)
class SortProductsArgs:
    sort_by: str = "price_asc"


@dataclass(frozen=True)
class ApplyCouponArgs:
    reason: str = ""


@dataclass(frozen=True)
class MalformedToolArguments:
    """Arguments that could not be decoded or validated for a tool call."""
    tool_name: str
    raw: Any
    error: str


ToolArguments = Union[SearchProductsArgs, CheckInventoryArgs, AddToCartArgs, SortProductsArgs, ApplyCouponArgs]


class _InvalidField(ValueError):
    pass


def _optional_number(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise _InvalidField(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise _InvalidField(f"{key} must be a number") from None


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    number = _optional_number(data, key)
    return int(number) if number is not None else None


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise _InvalidField(f"{key} must be a string")
    text = str(value).strip()
    return text or None


def _search_args(data: Dict[str, Any]) -> SearchProductsArgs:
    limit = _optional_int(data, "limit")
    return SearchProductsArgs(
        query=_optional_str(data, "query") or "",
        category=_optional_str(data, "category"),
        max_price=_optional_number(data, "maxPrice"),
        min_rating=_optional_number(data, "minRating"),
        limit=max(1, min(12, limit)) if limit is not None else 4,
    )


def _inventory_args(data: Dict[str, Any]) -> CheckInventoryArgs:
    color = _optional_str(data, "color")
    return CheckInventoryArgs(
        product_id=_optional_int(data, "productId"),
        product_name=_optional_str(data, "productName"),
        color=color.lower() if color else None,
    )


def _add_to_cart_args(data: Dict[str, Any]) -> AddToCartArgs:
    quantity = _optional_int(data, "quantity")
    return AddToCartArgs(
        product_id=_optional_int(data, "productId"),
        quantity=max(1, min(10, quantity)) if quantity else 1,
    )


def _sort_args(data: Dict[str, Any]) -> SortProductsArgs:
    sort_by = _optional_str(data, "sortBy")
    return SortProductsArgs(sort_by=sort_by if sort_by in SORT_CHOICES else "price_asc")


def _coupon_args(data: Dict[str, Any]) -> ApplyCouponArgs:
    return ApplyCouponArgs(reason=_optional_str(data, "reason") or "")


_PARSERS = {
    "search_products": _search_args,
    "check_inventory": _inventory_args,
    "add_to_cart": _add_to_cart_args,
    "sort_products": _sort_args,
    "apply_coupon": _coupon_args,
}

TOOL_NAMES = tuple(_PARSERS)


def parse_tool_arguments(name: str, raw: Any) -> Union[ToolArguments, MalformedToolArguments]:
    """Purpose: Decode and validate raw tool-call arguments into a typed record.
    Inputs/Outputs: Inputs are the tool name and raw arguments (JSON string, mapping,
        or None); output is a typed args dataclass or MalformedToolArguments.
    Side Effects / State: None.
    Dependencies: Uses json and the per-tool parsers above.
    Failure Modes: Unknown tools, undecodable JSON, non-object payloads, and wrongly
        typed fields all return MalformedToolArguments instead of raising.
    If Removed: Tool handlers would receive untyped argument bags.
    Testing Notes: ("add_to_cart", "{oops") is malformed; ("add_to_cart", {}) yields
        AddToCartArgs(product_id=None, quantity=1).
    """
    # Normalize the payload into a dict before field validation.
    parser = _PARSERS.get(name)
    if parser is None:
        return MalformedToolArguments(tool_name=name, raw=raw, error="unknown tool")
    data: Any = raw
    if raw is None or raw == "":
        data = {}
    elif isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            return MalformedToolArguments(tool_name=name, raw=raw, error=f"invalid json: {exc}")
    elif not isinstance(raw, dict):
        try:
            data = dict(raw)
        except (TypeError, ValueError):
            data = raw
    if not isinstance(data, dict):
        return MalformedToolArguments(tool_name=name, raw=raw, error="arguments must be an object")
    try:
        return parser(data)
    except _InvalidField as exc:
        return MalformedToolArguments(tool_name=name, raw=raw, error=str(exc))
