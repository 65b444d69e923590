"""
Scenario tests for the Clerk dialogue orchestrator.
"""

import json
import threading

import pytest

from clerk.agent import CHECKOUT_DECLINED_REPLY, CHECKOUT_REPLY, TurnContext
from clerk.gemini_client import ModelReply, ToolCall
from clerk.models import ChatContext
from clerk.profile_store import ShopperProfile

from conftest import FakeGemini


def seed_profile(store, session_id="s1", **fields):
    store.put(session_id, ShopperProfile(**fields))


class TestRuleOrder:
    def test_rules_are_data(self, make_agent):
        agent = make_agent()
        assert agent.rules.rule_names == [
            "checkout_confirmation",
            "add_to_cart",
            "discount_on_item",
            "color_check",
            "direct_mention",
            "intent_search",
        ]


class TestAddToCartAndCheckout:
    """Pronoun add-to-cart followed by checkout confirmation."""

    def test_add_this_uses_profile_anchor(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5)
        agent = make_agent()

        response = agent.handle_message("s1", "add this to my cart")

        assert response.action.type == "add_to_cart"
        assert response.action.productId == 5
        assert response.action.quantity == 1
        assert [card.id for card in response.products] == [5]
        assert response.message.startswith("Bet, I added 1 x Leather Loafers")
        assert response.content == response.message
        assert profile_store.get("s1").awaiting_checkout_confirmation is True

    def test_yes_navigates_to_checkout(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5)
        agent = make_agent()
        agent.handle_message("s1", "add this to my cart")

        response = agent.handle_message("s1", "yes")

        assert response.action.type == "navigate_checkout"
        assert response.products == []
        assert response.message == CHECKOUT_REPLY
        assert profile_store.get("s1").awaiting_checkout_confirmation is False

    def test_no_declines_without_action(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5, awaiting_checkout_confirmation=True)
        response = make_agent().handle_message("s1", "nah maybe later")
        assert response.action is None
        assert response.message == CHECKOUT_DECLINED_REPLY

    def test_unrelated_reply_clears_pending_flag(self, make_agent, profile_store):
        seed_profile(profile_store, awaiting_checkout_confirmation=True)
        response = make_agent().handle_message("s1", "show me some footwear")
        assert response.action.type == "search_products"
        assert profile_store.get("s1").awaiting_checkout_confirmation is False

    def test_quantity_and_context_id(self, make_agent, profile_store):
        context = ChatContext(lastSuggestedProductId=19)
        response = make_agent().handle_message("s2", "add 2 of it to cart", context)
        assert response.action.productId == 19
        assert response.action.quantity == 2


class TestDeterministicRules:
    """Discount, colour, direct mention, and intent search."""

    def test_discount_on_current_item(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5)
        response = make_agent().handle_message("s1", "can I get a discount on this please")
        assert response.action.type == "apply_coupon"
        assert response.action.code == "KIND-7-TEST"
        assert response.action.discountAmount == 7
        assert [card.id for card in response.products] == [5]
        assert "Leather Loafers" in response.message

    def test_color_available(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5)
        response = make_agent().handle_message("s1", "got this in black?")
        assert response.action is None
        assert response.message == "Yep, Leather Loafers is available in black."

    def test_color_unavailable(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5)
        response = make_agent().handle_message("s1", "what about pink?")
        assert response.message.startswith("Nope, Leather Loafers is not available in pink.")

    def test_direct_mention_shows_only_that_product(self, make_agent):
        response = make_agent().handle_message("s3", "tell me about the linen blazer")
        assert [card.id for card in response.products] == [8]
        assert response.actions == []
        assert response.message == "Fire pick. I found Linen Blazer for you."

    def test_direct_mention_with_purchase(self, make_agent, profile_store):
        response = make_agent().handle_message("s3", "I want to buy the chelsea boots")
        assert response.action.type == "add_to_cart"
        assert response.action.productId == 19
        assert profile_store.get("s3").awaiting_checkout_confirmation is True

    def test_footwear_intent(self, make_agent):
        gemini = FakeGemini()
        response = make_agent(gemini).handle_message("s4", "show me some footwear")
        assert response.products
        assert all(card.category == "Footwear" for card in response.products)
        assert response.action.type == "search_products"
        assert response.action.category == "Footwear"
        assert response.message == "Say less. Here are the best footwear picks right now:"
        assert gemini.tool_calls == []

    def test_type_query_is_most_specific(self, make_agent):
        response = make_agent().handle_message("s4", "any sunnies?")
        assert response.action.query == "sunglasses"
        assert response.action.category == "Accessories"
        assert sorted(card.id for card in response.products) == [3, 17]


class TestToolPass:
    """LLM tool calls, malformed arguments, and delegate failures."""

    def test_sort_tool(self, make_agent, profile_store):
        reply = ModelReply(tool_calls=[ToolCall("call_0", "sort_products", {"sortBy": "price_desc"})])
        response = make_agent(FakeGemini(tool_reply=reply)).handle_message("s5", "hmm what else you got")
        assert response.action.type == "sort_products"
        assert response.action.sortBy == "price_desc"
        assert [card.id for card in response.products] == [9, 8, 18, 5]
        assert profile_store.get("s5").preferred_sort == "price_desc"

    def test_coupon_tool_uses_cart_total(self, make_agent):
        reply = ModelReply(tool_calls=[ToolCall("call_0", "apply_coupon", {"reason": "birthday"})])
        context = ChatContext(cartTotal=320)
        response = make_agent(FakeGemini(tool_reply=reply)).handle_message("s5", "it's a special day", context)
        assert response.action.code == "BDAY-20-TEST"
        assert response.message == "Nice, your coupon BDAY-20-TEST is live for 20% off."

    def test_malformed_add_to_cart_is_not_found(self, make_agent):
        reply = ModelReply(tool_calls=[ToolCall("call_0", "add_to_cart", "{not json")])
        response = make_agent(FakeGemini(tool_reply=reply)).handle_message("s6", "grab me that thing")
        assert response.actions == []
        assert response.message.startswith("Couldn't find that exact one yet")

    def test_check_inventory_falls_back_to_anchor(self, make_agent, profile_store):
        seed_profile(profile_store, "s7", last_mentioned_product_id=19)
        reply = ModelReply(tool_calls=[ToolCall("call_0", "check_inventory", {})])
        response = make_agent(FakeGemini(tool_reply=reply)).handle_message("s7", "how many are left")
        assert response.message == "Chelsea Boots is in stock, and we've got 30 left right now."
        assert [card.id for card in response.products] == [19]

    def test_search_tool_records_transcript(self, make_agent):
        gemini = FakeGemini(
            text_reply=json.dumps({"productIds": [1, 6]}),
            tool_reply=ModelReply(tool_calls=[ToolCall("call_0", "search_products", {"query": "beach wedding"})]),
        )
        response = make_agent(gemini).handle_message("s8", "help me put together a look for a trip")
        assert [card.id for card in response.products] == [1, 6]
        assert response.action.type == "search_products"
        assert response.message == "Say less. Here are the best clothing picks right now:"

    def test_delegate_failure_degrades_to_safety_net(self, make_agent):
        gemini = FakeGemini(
            text_reply=RuntimeError("down"),
            tool_reply=RuntimeError("down"),
            content_reply=RuntimeError("down"),
        )
        response = make_agent(gemini).handle_message("s9", "anything cheap?")
        assert response.action.type == "sort_products"
        assert response.action.sortBy == "price_asc"
        assert [card.id for card in response.products] == [14, 7, 16, 10]

    def test_free_form_reply_when_nothing_else(self, make_agent):
        gemini = FakeGemini(content_reply="Hey! What are we shopping for today?")
        response = make_agent(gemini).handle_message("s10", "hello there")
        assert response.products == []
        assert response.message == "Hey! What are we shopping for today?"
        assert gemini.content_calls

    def test_backfill_from_viewed_category(self, make_agent):
        context = ChatContext(activeCategory="Accessories")
        response = make_agent(FakeGemini()).handle_message("s11", "hello there", context)
        assert len(response.products) == 3
        assert all(card.category == "Accessories" for card in response.products)
        assert response.data.personalized is True


class TestIntentGuard:
    """Queued cards must match detected intent."""

    def test_guard_replaces_unrelated_cards(self, make_agent, catalog):
        agent = make_agent()
        context = TurnContext(
            session_id="g1",
            message="show me some footwear",
            chat_context=ChatContext(),
            profile=ShopperProfile(),
            products=catalog.get_products(),
            categories=catalog.categories(),
        )
        agent._step_extract_signals(context)
        context.add_cards([catalog.get_product(1), catalog.get_product(2)])
        agent._step_intent_guard(context)
        assert context.cards
        assert all(card.category == "Footwear" for card in context.cards)
        assert context.actions[0].category == "Footwear"


class TestCartTotalCeiling:
    def test_item_discount_uses_cart_total(self, make_agent, profile_store):
        seed_profile(profile_store, last_mentioned_product_id=5)
        context = ChatContext(cartTotal=500)
        response = make_agent().handle_message("s1", "it's my birthday, any discount on this?", context)
        assert response.action.code == "BDAY-20-TEST"
        assert response.action.discountAmount == 20
        assert [card.id for card in response.products] == [5]


class TestIntentSearchDelegate:
    def test_intent_search_consults_delegate(self, make_agent):
        gemini = FakeGemini(text_reply=json.dumps({"productIds": [19, 10, 2]}))
        response = make_agent(gemini).handle_message("s4", "show me some footwear")
        assert len(gemini.text_calls) == 1
        assert [card.id for card in response.products] == [19, 10]
        assert response.action.category == "Footwear"


class TestSafetyNetBranches:
    def test_unscoped_coupon(self, make_agent):
        context = ChatContext(cartTotal=200)
        response = make_agent().handle_message("s12", "got any promo codes?", context)
        assert response.action.type == "apply_coupon"
        assert response.action.code == "SAVE-5-TEST"
        assert response.products == []
        assert response.message == "Nice, your coupon SAVE-5-TEST is live for 5% off."

    def test_purchase_adds_anchor(self, make_agent, profile_store):
        seed_profile(profile_store, "s13", last_mentioned_product_id=5)
        response = make_agent().handle_message("s13", "ok i want to purchase")
        assert response.action.type == "add_to_cart"
        assert response.action.productId == 5
        assert response.message.endswith("Want me to take you to checkout?")
        assert profile_store.get("s13").awaiting_checkout_confirmation is True


class TestToolAddToCartReply:
    def test_tool_add_asks_about_checkout(self, make_agent, profile_store):
        reply = ModelReply(tool_calls=[ToolCall("call_0", "add_to_cart", {"productId": 10, "quantity": 2})])
        response = make_agent(FakeGemini(tool_reply=reply)).handle_message("s14", "grab me that thing")
        assert response.action.productId == 10
        assert response.message == "Bet. I added 2 x Espadrilles to your cart. Want me to take you to checkout?"
        assert profile_store.get("s14").awaiting_checkout_confirmation is True


class TestTurnCommit:
    """Profiles commit only after a full turn; same-session turns serialize."""

    def test_failed_turn_leaves_profile_untouched(self, make_agent, profile_store):
        seed_profile(profile_store, "s15", last_mentioned_product_id=5)
        before = profile_store.get("s15")
        reply = ModelReply(tool_calls=[ToolCall("call_0", "sort_products", {"sortBy": "rating"})])
        agent = make_agent(FakeGemini(tool_reply=reply))

        def explode(context, args):
            raise RuntimeError("handler blew up")

        agent._tool_handlers["sort_products"] = explode
        context = ChatContext(activeCategory="Footwear", recentlyViewedProductIds=[19])
        with pytest.raises(RuntimeError):
            agent.handle_message("s15", "hmm what else you got", context)
        assert profile_store.get("s15") == before

    def test_same_session_waits_for_lock(self, make_agent, profile_store):
        agent = make_agent()
        finished = threading.Event()

        def turn():
            agent.handle_message("s16", "show me some footwear")
            finished.set()

        with profile_store.session_lock("s16"):
            worker = threading.Thread(target=turn)
            worker.start()
            assert not finished.wait(0.2)
        worker.join(timeout=5)
        assert finished.is_set()
        assert profile_store.get("s16").viewed_categories == ["Footwear"]
