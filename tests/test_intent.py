"""
Unit tests for lexical intent extraction.
"""

import pytest

from clerk.intent import (
    color_matches,
    extract_intent_signals,
    extract_requested_color,
    extract_requested_quantity,
    infer_product_types,
    infer_product_vibes,
    is_affirmative,
    is_negative,
    wants_add_to_cart,
)
from clerk.utils import normalize_text, tokenize

CATEGORIES = ["Clothing", "Accessories", "Footwear"]


class TestNormalization:
    """Text normalization and tokenization."""

    def test_normalize_collapses_punctuation(self):
        assert normalize_text("Smart-Casual!!  Vibes") == "smart casual vibes"

    def test_tokenize_drops_single_characters(self):
        assert tokenize("a red T-shirt") == ["red", "shirt"]


class TestCategorySignals:
    """Typo-tolerant category synonyms."""

    @pytest.mark.parametrize("message", ["any sneakers?", "show me fotwear", "need new shoez"])
    def test_synonyms_resolve_to_footwear(self, message):
        assert extract_intent_signals(message, CATEGORIES).category == "Footwear"

    def test_category_missing_from_catalog_is_unset(self):
        signals = extract_intent_signals("any sneakers?", ["Clothing"])
        assert signals.category is None

    def test_action_verb_alone_wants_products(self):
        signals = extract_intent_signals("show me something", CATEGORIES)
        assert signals.wants_products is True
        assert signals.has_intent is False

    def test_small_talk_wants_nothing(self):
        signals = extract_intent_signals("hello there", CATEGORIES)
        assert signals.wants_products is False

    def test_product_type_and_vibe(self):
        signals = extract_intent_signals("boots for a formal wedding", CATEGORIES)
        assert signals.category == "Footwear"
        assert signals.product_types == ["boots"]
        assert signals.vibes == ["formal", "occasion"]

    def test_summer_vibe(self):
        signals = extract_intent_signals("something for a beach vacation", CATEGORIES)
        assert signals.vibes == ["summer"]


class TestProductInference:
    """Per-product type and vibe inference."""

    def test_type_from_name(self):
        assert infer_product_types("Chelsea Boots", "Suede Chelsea boots.", "Footwear") == ["boots"]

    def test_name_noun_beats_description(self):
        types = infer_product_types("Silk Scarf", "Can be worn around the neck, hair, or bag handle.", "Accessories")
        assert types == ["scarf"]

    def test_type_falls_back_to_category(self):
        assert infer_product_types("Espadrilles", "The ultimate summer shoe.", "Footwear") == ["shoes"]

    def test_vibe_falls_back_to_category(self):
        assert infer_product_vibes("Chelsea Boots", "Suede with elastic side panels.", "Footwear") == ["smart-casual"]

    def test_vibes_from_copy(self):
        vibes = infer_product_vibes("Classic White Linen Shirt", "Breathable linen for summer weddings.", "Clothing")
        assert "summer" in vibes
        assert "minimal" in vibes


class TestColor:
    """Colour extraction and fuzzy matching."""

    def test_first_color_in_list_order(self):
        assert extract_requested_color("got this in navy or black?") == "black"

    def test_whole_words_only(self):
        assert extract_requested_color("where do I stand on this") is None

    @pytest.mark.parametrize(
        "requested, available",
        [("blue", "Light Blue"), ("Light Blue", "blue"), ("BLACK", "black")],
    )
    def test_substring_either_direction(self, requested, available):
        assert color_matches(requested, available) is True

    def test_disjoint_colors(self):
        assert color_matches("red", "Navy") is False
        assert color_matches("", "Navy") is False


class TestQuantity:
    """Quantity extraction is clamped to [1, 10]."""

    @pytest.mark.parametrize(
        "message, expected",
        [("add 3x to cart", 3), ("add to cart", 1), ("add 99 items", 10), ("add 0 of these", 1)],
    )
    def test_quantity(self, message, expected):
        assert extract_requested_quantity(message) == expected


class TestPhrasing:
    """Add-to-cart and confirmation phrasing."""

    @pytest.mark.parametrize("message", ["add this to my cart", "buy it", "checkout that", "add the loafers to cart"])
    def test_add_to_cart(self, message):
        assert wants_add_to_cart(message) is True

    def test_plain_question_is_not_add(self):
        assert wants_add_to_cart("what's new?") is False

    @pytest.mark.parametrize("message", ["yes", "Let's go!", "ok proceed", "yeah"])
    def test_affirmative(self, message):
        assert is_affirmative(message) is True

    def test_affirmative_needs_whole_words(self):
        assert is_affirmative("yesterday was fun") is False

    @pytest.mark.parametrize("message", ["nah", "maybe later", "cancel that"])
    def test_negative(self, message):
        assert is_negative(message) is True
