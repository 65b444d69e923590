"""
Unit tests for tool schemas and the typed tool-argument parse step.
"""

import pytest

from clerk.tools import (
    TOOL_DECLARATIONS,
    TOOL_NAMES,
    AddToCartArgs,
    ApplyCouponArgs,
    CheckInventoryArgs,
    MalformedToolArguments,
    SearchProductsArgs,
    SortProductsArgs,
    parse_tool_arguments,
)


class TestDeclarations:
    def test_five_tools(self):
        assert [tool["name"] for tool in TOOL_DECLARATIONS] == list(TOOL_NAMES)
        assert len(TOOL_NAMES) == 5


class TestParseToolArguments:
    """Typed parsing with a malformed variant."""

    def test_json_string(self):
        args = parse_tool_arguments("search_products", '{"query": "linen", "maxPrice": "120", "limit": 2}')
        assert args == SearchProductsArgs(query="linen", max_price=120.0, limit=2)

    def test_mapping_with_float_ids(self):
        args = parse_tool_arguments("add_to_cart", {"productId": 5.0, "quantity": 3.0})
        assert args == AddToCartArgs(product_id=5, quantity=3)

    def test_quantity_is_clamped(self):
        assert parse_tool_arguments("add_to_cart", {"productId": 5, "quantity": 50}).quantity == 10

    def test_empty_arguments_use_defaults(self):
        assert parse_tool_arguments("add_to_cart", None) == AddToCartArgs()
        assert parse_tool_arguments("apply_coupon", "") == ApplyCouponArgs()

    def test_invalid_json_is_malformed(self):
        args = parse_tool_arguments("add_to_cart", "{oops")
        assert isinstance(args, MalformedToolArguments)
        assert args.tool_name == "add_to_cart"

    def test_non_object_is_malformed(self):
        assert isinstance(parse_tool_arguments("check_inventory", "[1, 2]"), MalformedToolArguments)

    def test_wrong_field_type_is_malformed(self):
        args = parse_tool_arguments("add_to_cart", {"productId": "the loafers"})
        assert isinstance(args, MalformedToolArguments)
        assert "productId" in args.error

    def test_unknown_tool_is_malformed(self):
        assert isinstance(parse_tool_arguments("delete_store", {}), MalformedToolArguments)

    @pytest.mark.parametrize("value, expected", [("rating", "rating"), ("cheapest", "price_asc"), (None, "price_asc")])
    def test_sort_defaults(self, value, expected):
        assert parse_tool_arguments("sort_products", {"sortBy": value}) == SortProductsArgs(sort_by=expected)

    def test_color_is_lowercased(self):
        args = parse_tool_arguments("check_inventory", {"productName": "Linen Blazer", "color": "Beige"})
        assert args == CheckInventoryArgs(product_name="Linen Blazer", color="beige")
