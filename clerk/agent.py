"""Clerk dialogue orchestration: deterministic rules first, LLM tools second.

Role:
    Implements one chat turn end to end: profile sync, intent extraction, the
    ordered deterministic rule chain, the LLM tool-calling pass, the safety net,
    personalization backfill, the intent-consistency guard, and reply finalization.
    It owns the TurnContext contract passed between pipeline steps.

Turn data contract (core fields passed across steps):
    - profile: working copy of the ShopperProfile; committed only when the turn ends.
    - signals/resolution: IntentSignals and the tagged product resolution.
    - requested_color/requested_quantity: lexical extras from the message.
    - pending_confirmation: whether the previous turn asked "ready to check out?".
    - fired_rule: name of the deterministic rule that short-circuited, if any.
    - actions/cards/forced_text: accumulated response pieces.
    - transcript/system_prompt: LLM conversation state for the tool and final passes.

Step contracts:
    Sync Profile:
        Merges the UI context into the profile and drops anchors missing from the catalog.
    Extract Signals:
        Fills signals, resolution, colour, and quantity.
    Deterministic Rules:
        Checkout confirmation, add-to-cart, discount-on-item, colour check,
        direct mention, intent search; first match wins.
    Tool Pass / Safety Net / Backfill / Intent Guard:
        Run only when no rule fired.
    Finalize Reply:
        Always runs; picks forced text, the card lead, or a free-form generation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .catalog import Catalog, Product, sort_products, to_product_card
from .coupons import Coupon, CouponPolicy
from .gemini_client import text_content
from .intent import (
    IntentSignals,
    color_matches,
    extract_intent_signals,
    extract_requested_color,
    extract_requested_quantity,
    has_browse_verb,
    is_affirmative,
    is_budget_request,
    is_discount_request,
    is_negative,
    references_current_item,
    signals_purchase,
    wants_add_to_cart,
)
from .matcher import (
    ProductMatcher,
    ProductResolution,
    filter_by_intent,
    keyword_search,
    pick_product_by_id_or_name,
    resolve_product,
)
from .models import (
    AddToCartAction,
    ApplyCouponAction,
    ChatContext,
    ChatResponse,
    NavigateCheckoutAction,
    ResponseData,
    SearchProductsAction,
    SortProductsAction,
)
from .profile_store import (
    MAX_ADDED_PRODUCTS,
    ProfileStore,
    ShopperProfile,
    push_unique,
)
from .prompt_loader import load_prompt, render_prompt
from .runtime import Pipeline, PipelineStep, Rule, RuleChain
from .tools import (
    TOOL_DECLARATIONS,
    AddToCartArgs,
    ApplyCouponArgs,
    CheckInventoryArgs,
    MalformedToolArguments,
    SearchProductsArgs,
    SortProductsArgs,
    parse_tool_arguments,
)

logger = logging.getLogger("clerk.agent")

CHECKOUT_REPLY = "Perfect. Taking you to checkout now."
CHECKOUT_DECLINED_REPLY = "No stress. It's chilling in your cart whenever you're ready."
PRODUCT_NOT_FOUND_REPLY = "Got you. Drop the product name and color you want."
ADD_NOT_FOUND_REPLY = "Couldn't find that exact one yet. Send the name and I'll add it fast."
NO_CARDS_LEAD = "I pulled a few solid picks for you."
FALLBACK_REPLY = "Say less. Tell me the vibe or the piece you're after and I'll pull some picks."
RUDE_REPLY = "I can't give a discount with that tone. Keep it kind and I'll see what I can do."
SORT_REPLIES = {
    "price_asc": "Say less. I sorted low-to-high and pulled the best budget-friendly picks below.",
    "price_desc": "Love that. I sorted by premium options and pulled standout high-end picks below.",
    "rating": "Done. I sorted by top-rated products and pulled the strongest-reviewed picks below.",
}
BACKFILL_LIMIT = 3


@dataclass
class TurnContext:
    """Mutable context passed through each turn step."""
    session_id: str
    message: str
    chat_context: ChatContext
    profile: ShopperProfile
    products: List[Product]
    categories: List[str] = field(default_factory=list)
    signals: IntentSignals = field(default_factory=IntentSignals)
    resolution: ProductResolution = field(default_factory=lambda: ProductResolution("none"))
    requested_color: Optional[str] = None
    requested_quantity: int = 1
    pending_confirmation: bool = False
    fired_rule: Optional[str] = None
    personalized: bool = False
    actions: List[Any] = field(default_factory=list)
    cards: List[Product] = field(default_factory=list)
    forced_text: Optional[str] = None
    reply_text: str = ""
    system_prompt: str = ""
    transcript: List[Dict[str, Any]] = field(default_factory=list)

    def add_cards(self, products: List[Product]) -> None:
        # Cards are unique per response, first occurrence wins.
        seen = {card.id for card in self.cards}
        for product in products:
            if product.id not in seen:
                self.cards.append(product)
                seen.add(product.id)

    def replace_action(self, action_type: str, action: Any) -> None:
        for index, existing in enumerate(self.actions):
            if existing.type == action_type:
                self.actions[index] = action
                return
        self.actions.append(action)


def card_lead_message(cards: List[Product]) -> str:
    """Lead sentence for a response that renders product cards."""
    if not cards:
        return NO_CARDS_LEAD
    return f"Say less. Here are the best {cards[0].category.lower()} picks right now:"


def coupon_reply(coupon: Coupon, product: Optional[Product] = None) -> str:
    if not coupon.is_deal:
        return RUDE_REPLY
    if product is not None:
        return f"Nice, your coupon {coupon.code} is live for {coupon.discount_amount}% off {product.name}."
    return f"Nice, your coupon {coupon.code} is live for {coupon.discount_amount}% off."


class ClerkAgent:
    def __init__(
        self,
        catalog: Catalog,
        profile_store: ProfileStore,
        matcher: ProductMatcher,
        gemini: Optional[Any],
        prompts_dir: Path,
        coupon_policy: Optional[CouponPolicy] = None,
    ) -> None:
        """Purpose: Initialize the turn pipeline, rule chain, and dependencies.
        Inputs/Outputs: Inputs are catalog, profile store, matcher, Gemini client (or
            None for deterministic-only operation), prompt dir, and coupon policy;
            no return value.
        Side Effects / State: Constructs the Pipeline and RuleChain.
        Dependencies: Uses Pipeline/PipelineStep, RuleChain/Rule, and step methods.
        Failure Modes: None at init; runtime errors occur within step functions.
        If Removed: The chat endpoint cannot construct the Clerk.
        Testing Notes: Instantiate with a fake Gemini and verify rule order.
        """
        # Store dependencies and build the ordered steps and rules.
        self._catalog = catalog
        self._profile_store = profile_store
        self._matcher = matcher
        self._gemini = gemini
        self._prompts_dir = prompts_dir
        self._coupon_policy = coupon_policy or CouponPolicy()
        self._tool_handlers: Dict[str, Callable[[TurnContext, Any], Dict[str, Any]]] = {
            "search_products": self._tool_search_products,
            "check_inventory": self._tool_check_inventory,
            "add_to_cart": self._tool_add_to_cart,
            "sort_products": self._tool_sort_products,
            "apply_coupon": self._tool_apply_coupon,
        }
        self.rules = RuleChain(
            [
                Rule("checkout_confirmation", self._applies_checkout_confirmation, self._rule_checkout_confirmation),
                Rule("add_to_cart", self._applies_add_to_cart, self._rule_add_to_cart),
                Rule("discount_on_item", self._applies_discount_on_item, self._rule_discount_on_item),
                Rule("color_check", self._applies_color_check, self._rule_color_check),
                Rule("direct_mention", self._applies_direct_mention, self._rule_direct_mention),
                Rule("intent_search", self._applies_intent_search, self._rule_intent_search),
            ]
        )
        short_circuited = lambda context: context.fired_rule is not None  # noqa: E731
        self._pipeline = Pipeline(
            steps=[
                PipelineStep("sync_profile", self._step_sync_profile),
                PipelineStep("extract_signals", self._step_extract_signals),
                PipelineStep("deterministic_rules", self._step_deterministic_rules),
                PipelineStep("tool_pass", self._step_tool_pass, skip_if=short_circuited),
                PipelineStep(
                    "safety_net",
                    self._step_safety_net,
                    skip_if=lambda context: short_circuited(context) or bool(context.actions),
                ),
                PipelineStep("backfill", self._step_backfill, skip_if=short_circuited),
                PipelineStep("intent_guard", self._step_intent_guard, skip_if=short_circuited),
                PipelineStep("finalize_reply", self._step_finalize_reply, always_run=True),
            ]
        )

    def handle_message(self, session_id: str, message: str, context: Optional[ChatContext] = None) -> ChatResponse:
        """Purpose: Run the full pipeline for one message and build the response.
        Inputs/Outputs: Inputs are session_id, message, and UI context; output is a
            ChatResponse envelope.
        Side Effects / State: Serializes turns per session; commits the profile copy
            to the store only after every step finished.
        Dependencies: Uses ProfileStore.session_lock/get_or_create/put and Pipeline.run.
        Failure Modes: Unexpected exceptions propagate and the profile is not committed.
        If Removed: The chat endpoint cannot execute any Clerk logic.
        Testing Notes: With anchor 5, "add this to my cart" returns add_to_cart for 5.
        """
        # Lock the session, work on a profile copy, then commit.
        chat_context = context or ChatContext()
        with self._profile_store.session_lock(session_id):
            profile = self._profile_store.get_or_create(session_id)
            turn = TurnContext(
                session_id=session_id,
                message=message,
                chat_context=chat_context,
                profile=profile,
                products=self._catalog.get_products(),
                categories=self._catalog.categories(),
            )
            logger.info("session=%s question=%s", session_id, message)
            steps = self._pipeline.run(turn)
            self._profile_store.put(session_id, turn.profile)
        logger.info(
            "session=%s steps=%s rule=%s actions=%s cards=%s",
            session_id,
            ",".join(steps),
            turn.fired_rule or "fallback",
            [action.type for action in turn.actions],
            [card.id for card in turn.cards],
        )
        return self._build_response(turn)

    def _build_response(self, context: TurnContext) -> ChatResponse:
        cards = [to_product_card(product) for product in context.cards]
        return ChatResponse(
            message=context.reply_text,
            content=context.reply_text,
            action=context.actions[0] if context.actions else None,
            actions=list(context.actions),
            products=cards,
            data=ResponseData(
                productsCount=len(cards),
                personalized=context.personalized or bool(context.profile.viewed_categories),
            ),
        )

    # Pipeline steps -------------------------------------------------------

    def _step_sync_profile(self, context: TurnContext) -> None:
        """Purpose: Merge the client's UI context into the working profile.
        Inputs/Outputs: Input is TurnContext; no return value.
        Side Effects / State: Updates last_query, histories, sort, shown ids, and
            clears the pending-confirmation flag into context.pending_confirmation.
        Dependencies: Uses push_unique and the catalog id set.
        Failure Modes: Unknown product ids are ignored.
        If Removed: Pronouns and personalization ignore what the storefront shows.
        Testing Notes: Context with activeCategory="Footwear" appends to viewed_categories.
        """
        # Sync UI context; anchors outside the catalog snapshot are dropped.
        profile = context.profile
        chat_context = context.chat_context
        known_ids = {product.id for product in context.products}
        profile.last_query = context.message
        profile.recently_viewed_product_ids = push_unique(
            profile.recently_viewed_product_ids,
            [product_id for product_id in chat_context.recentlyViewedProductIds if product_id in known_ids],
        )
        profile.added_product_ids = push_unique(
            profile.added_product_ids,
            [product_id for product_id in chat_context.cartProductIds if product_id in known_ids],
            max_items=MAX_ADDED_PRODUCTS,
        )
        if chat_context.preferredSort in ("price_asc", "price_desc", "rating"):
            profile.preferred_sort = chat_context.preferredSort
        if chat_context.activeCategory and chat_context.activeCategory.lower() != "all":
            profile.record_viewed_category(chat_context.activeCategory)
        suggested = [product_id for product_id in chat_context.lastSuggestedProductIds if product_id in known_ids]
        if suggested:
            profile.last_shown_product_ids = suggested
        else:
            profile.last_shown_product_ids = [
                product_id for product_id in profile.last_shown_product_ids if product_id in known_ids
            ]
        if profile.last_mentioned_product_id is not None and profile.last_mentioned_product_id not in known_ids:
            profile.last_mentioned_product_id = None

        # The pending question only lives for one turn unless re-asked.
        context.pending_confirmation = profile.awaiting_checkout_confirmation
        profile.awaiting_checkout_confirmation = False

    def _step_extract_signals(self, context: TurnContext) -> None:
        # Lexical signals plus tagged product resolution.
        context.signals = extract_intent_signals(context.message, context.categories)
        context.resolution = resolve_product(
            context.message,
            context.products,
            context.profile,
            context.chat_context.lastSuggestedProductId,
        )
        context.requested_color = extract_requested_color(context.message)
        context.requested_quantity = extract_requested_quantity(context.message)
        logger.info(
            "session=%s signals=%s resolution=%s product=%s color=%s qty=%s",
            context.session_id,
            json.dumps(context.signals.as_dict()),
            context.resolution.source,
            context.resolution.product.id if context.resolution.product else None,
            context.requested_color,
            context.requested_quantity,
        )

    def _step_deterministic_rules(self, context: TurnContext) -> None:
        context.fired_rule = self.rules.run(context)
        if context.fired_rule:
            logger.info("session=%s rule=%s", context.session_id, context.fired_rule)

    def _step_tool_pass(self, context: TurnContext) -> None:
        """Purpose: Let the LLM pick tools when no deterministic rule fired.
        Inputs/Outputs: Input is TurnContext; no return value.
        Side Effects / State: Appends actions, cards, forced text, and transcript entries.
        Dependencies: Uses GeminiClient.generate_with_tools, parse_tool_arguments,
            and the _tool_* handlers.
        Failure Modes: Delegate errors are logged and treated as zero tool calls;
            malformed arguments are re-parsed as empty arguments.
        If Removed: Open-ended requests never reach search/inventory/coupon tools.
        Testing Notes: A scripted apply_coupon call yields one apply_coupon action.
        """
        # Build the persona prompt and run one tool-calling pass.
        context.system_prompt = render_prompt(
            self._prompts_dir / "clerk_system.txt",
            {"PROFILE_JSON": json.dumps(context.profile.activity_summary())},
        )
        context.transcript = [text_content("user", context.message)]
        if self._gemini is None:
            return
        try:
            reply = self._gemini.generate_with_tools(
                context.transcript,
                TOOL_DECLARATIONS,
                system_instruction=context.system_prompt,
            )
        except Exception as exc:
            logger.warning("session=%s tool_pass failed error=%s", context.session_id, exc)
            logger.debug("tool_pass traceback", exc_info=True)
            return
        if reply.text:
            context.transcript.append(text_content("model", reply.text))
        for call in reply.tool_calls:
            handler = self._tool_handlers.get(call.name)
            if handler is None:
                logger.warning("session=%s tool=%s unknown", context.session_id, call.name)
                continue
            args = parse_tool_arguments(call.name, call.arguments)
            if isinstance(args, MalformedToolArguments):
                logger.warning(
                    "session=%s tool=%s malformed_args error=%s", context.session_id, call.name, args.error
                )
                args = parse_tool_arguments(call.name, {})
            logger.info("session=%s tool=%s call_id=%s args=%s", context.session_id, call.name, call.call_id, args)
            result = handler(context, args)
            context.transcript.append(
                text_content("user", f"Tool {call.name} result: {json.dumps(result, ensure_ascii=False)}")
            )

    def _step_safety_net(self, context: TurnContext) -> None:
        """Purpose: Execute obvious intents when the tool pass produced no action.
        Inputs/Outputs: Input is TurnContext; no return value.
        Side Effects / State: May add cards, one action, and forced text.
        Dependencies: Uses ProductMatcher.semantic_match, CouponPolicy, intent detectors.
        Failure Modes: Delegated-match failure yields no cards and falls through.
        If Removed: "anything cheaper?" depends entirely on the model calling a tool.
        Testing Notes: With a failing delegate, "something cheap" sorts price_asc.
        """
        # Semantic retry, then budget, then discount, then purchase with an anchor.
        message = context.message
        profile = context.profile
        if context.signals.wants_products:
            results = self._matcher.semantic_match(message, context.products, category=context.signals.category)
            if results:
                context.add_cards(results)
                profile.show_products([product.id for product in results])
                context.actions.append(SearchProductsAction(query=message, category=context.signals.category))
                logger.info("session=%s safety_net=semantic_match", context.session_id)
                return
        if is_budget_request(message):
            cheapest = sort_products(context.products, "price_asc")[:4]
            profile.preferred_sort = "price_asc"
            context.actions.append(SortProductsAction(sortBy="price_asc"))
            context.add_cards(cheapest)
            profile.show_products([product.id for product in cheapest])
            context.forced_text = SORT_REPLIES["price_asc"]
            logger.info("session=%s safety_net=budget_sort", context.session_id)
            return
        if is_discount_request(message):
            coupon = self._coupon_policy.build_coupon_from_reason(message, context.chat_context.cartTotal)
            context.actions.append(
                ApplyCouponAction(code=coupon.code, discountAmount=coupon.discount_amount, reason=message)
            )
            context.forced_text = coupon_reply(coupon)
            logger.info("session=%s safety_net=coupon code=%s", context.session_id, coupon.code)
            return
        anchor = self._catalog.get_product(profile.last_mentioned_product_id)
        if signals_purchase(message) and anchor is not None:
            self._add_product(context, anchor, 1)
            context.forced_text = f"Done, I added {anchor.name} to your cart. Want me to take you to checkout?"
            logger.info("session=%s safety_net=add_to_cart product=%s", context.session_id, anchor.id)

    def _step_backfill(self, context: TurnContext) -> None:
        # Seed picks from the most recently viewed category when nothing is queued.
        profile = context.profile
        if context.cards or not profile.viewed_categories:
            return
        seed = profile.viewed_categories[-1]
        picks = keyword_search(seed, context.products, profile, category=seed, limit=BACKFILL_LIMIT)
        if not picks:
            return
        context.add_cards(picks)
        profile.show_products([product.id for product in picks])
        context.personalized = True
        logger.info("session=%s backfill category=%s ids=%s", context.session_id, seed, [p.id for p in picks])

    def _step_intent_guard(self, context: TurnContext) -> None:
        """Purpose: Keep queued cards consistent with this turn's detected intent.
        Inputs/Outputs: Input is TurnContext; no return value.
        Side Effects / State: May replace cards and the search_products action.
        Dependencies: Uses filter_by_intent and ProductMatcher.match_by_intent.
        Failure Modes: No-op without intent or without queued cards.
        If Removed: A footwear request could render unrelated backfill cards.
        Testing Notes: Intent Footwear with Clothing cards queued -> Footwear cards.
        """
        # Replace cards only when none of them fall inside the intent set.
        signals = context.signals
        if not signals.has_intent or not context.cards:
            return
        allowed = {
            product.id
            for product in filter_by_intent(context.products, signals.category, signals.product_types, signals.vibes)
        }
        if any(card.id in allowed for card in context.cards):
            return
        results = self._matcher.match_by_intent(signals, context.products, context.profile, context.message)
        context.cards = []
        context.add_cards(results)
        context.profile.show_products([product.id for product in results])
        context.replace_action(
            "search_products",
            SearchProductsAction(query=self._intent_query(context), category=signals.category),
        )
        context.forced_text = None
        logger.info("session=%s intent_guard replaced ids=%s", context.session_id, [p.id for p in results])

    def _step_finalize_reply(self, context: TurnContext) -> None:
        """Purpose: Choose the reply text for the turn.
        Inputs/Outputs: Input is TurnContext; sets context.reply_text.
        Side Effects / State: May call the delegate for a free-form reply.
        Dependencies: Uses card_lead_message and GeminiClient.generate_content.
        Failure Modes: Delegate errors fall back to a fixed friendly reply.
        If Removed: Responses would carry empty messages.
        Testing Notes: A turn with cards and no forced text starts with "Say less.".
        """
        # Forced text, then card lead, then free-form generation.
        if context.forced_text:
            context.reply_text = context.forced_text
            return
        if context.cards:
            context.reply_text = card_lead_message(context.cards)
            return
        context.reply_text = self._free_form_reply(context) or FALLBACK_REPLY

    def _free_form_reply(self, context: TurnContext) -> str:
        if self._gemini is None:
            return ""
        if not context.system_prompt:
            context.system_prompt = render_prompt(
                self._prompts_dir / "clerk_system.txt",
                {"PROFILE_JSON": json.dumps(context.profile.activity_summary())},
            )
        contents = list(context.transcript or [text_content("user", context.message)])
        contents.append(text_content("user", load_prompt(self._prompts_dir / "final_reply.txt").strip()))
        try:
            return self._gemini.generate_content(contents, system_instruction=context.system_prompt).strip()
        except Exception as exc:
            logger.warning("session=%s final_reply failed error=%s", context.session_id, exc)
            logger.debug("final_reply traceback", exc_info=True)
            return ""

    # Deterministic rules --------------------------------------------------

    def _applies_checkout_confirmation(self, context: TurnContext) -> bool:
        if not context.pending_confirmation:
            return False
        return is_affirmative(context.message) or is_negative(context.message)

    def _rule_checkout_confirmation(self, context: TurnContext) -> None:
        # Affirmative wins over negative for mixed replies.
        context.personalized = True
        if is_affirmative(context.message):
            context.actions.append(NavigateCheckoutAction())
            context.forced_text = CHECKOUT_REPLY
            return
        context.forced_text = CHECKOUT_DECLINED_REPLY

    def _applies_add_to_cart(self, context: TurnContext) -> bool:
        return wants_add_to_cart(context.message) and context.resolution.found

    def _rule_add_to_cart(self, context: TurnContext) -> None:
        product = context.resolution.product
        quantity = context.requested_quantity
        self._add_product(context, product, quantity)
        context.profile.show_products([product.id])
        context.add_cards([product])
        context.personalized = True
        context.forced_text = (
            f"Bet, I added {quantity} x {product.name} to your cart. Want me to take you to checkout?"
        )

    def _applies_discount_on_item(self, context: TurnContext) -> bool:
        if not is_discount_request(context.message) or not context.resolution.found:
            return False
        if context.resolution.source == "explicit":
            return False
        return references_current_item(context.message) or not has_browse_verb(context.message)

    def _rule_discount_on_item(self, context: TurnContext) -> None:
        # Scoped to the item for messaging; the cart total still sets the ceiling.
        product = context.resolution.product
        coupon = self._coupon_policy.build_coupon_from_reason(context.message, context.chat_context.cartTotal)
        context.actions.append(
            ApplyCouponAction(code=coupon.code, discountAmount=coupon.discount_amount, reason=context.message)
        )
        context.profile.show_products([product.id])
        context.add_cards([product])
        context.personalized = True
        context.forced_text = coupon_reply(coupon, product)

    def _applies_color_check(self, context: TurnContext) -> bool:
        return bool(context.requested_color) and context.resolution.found

    def _rule_color_check(self, context: TurnContext) -> None:
        product = context.resolution.product
        color = context.requested_color
        available = any(color_matches(color, option) for option in product.colors)
        context.profile.show_products([product.id])
        context.profile.record_viewed_category(product.category)
        context.add_cards([product])
        context.personalized = True
        if available:
            context.forced_text = f"Yep, {product.name} is available in {color}."
        else:
            context.forced_text = f"Nope, {product.name} is not available in {color}. Want close alternatives?"

    def _applies_direct_mention(self, context: TurnContext) -> bool:
        return context.resolution.source == "explicit"

    def _rule_direct_mention(self, context: TurnContext) -> None:
        # Show only the named product; buy phrasing also adds it.
        product = context.resolution.product
        context.profile.show_products([product.id])
        context.profile.record_viewed_category(product.category)
        context.add_cards([product])
        context.personalized = True
        text = f"Fire pick. I found {product.name} for you."
        if context.requested_color:
            if any(color_matches(context.requested_color, option) for option in product.colors):
                text = f"Yep, {product.name} comes in {context.requested_color}."
            else:
                text = f"{product.name} is not in {context.requested_color}, but I can show close matches."
        if signals_purchase(context.message):
            self._add_product(context, product, context.requested_quantity)
            text += " I added it to your cart. Ready to check out?"
        context.forced_text = text

    def _applies_intent_search(self, context: TurnContext) -> bool:
        return context.signals.wants_products and context.signals.has_intent

    def _rule_intent_search(self, context: TurnContext) -> None:
        signals = context.signals
        results = self._matcher.match_by_intent(signals, context.products, context.profile, context.message)
        context.add_cards(results)
        context.profile.show_products([product.id for product in results])
        category = signals.category or (results[0].category if results else None)
        if category:
            context.profile.record_viewed_category(category)
        context.actions.append(SearchProductsAction(query=self._intent_query(context), category=signals.category))
        context.personalized = True
        context.forced_text = card_lead_message(context.cards)

    @staticmethod
    def _intent_query(context: TurnContext) -> str:
        signals = context.signals
        if signals.product_types:
            return signals.product_types[0]
        if signals.vibes:
            return signals.vibes[0]
        return context.message

    def _add_product(self, context: TurnContext, product: Product, quantity: int) -> None:
        # Every add-to-cart asks the shopper to confirm checkout next turn.
        context.profile.last_mentioned_product_id = product.id
        context.profile.record_added_product(product.id)
        context.profile.awaiting_checkout_confirmation = True
        context.actions.append(AddToCartAction(productId=product.id, quantity=quantity))

    # Tool handlers --------------------------------------------------------

    def _tool_search_products(self, context: TurnContext, args: SearchProductsArgs) -> Dict[str, Any]:
        results = self._matcher.search(
            args.query or context.message,
            context.products,
            context.profile,
            category=args.category,
            max_price=args.max_price,
            min_rating=args.min_rating,
            limit=args.limit,
        )
        for product in results:
            context.profile.record_viewed_category(product.category)
        if results:
            context.profile.show_products([product.id for product in results])
        context.add_cards(results)
        context.actions.append(SearchProductsAction(query=args.query, category=args.category))
        return {
            "products": [{"id": p.id, "name": p.name, "price": p.price} for p in results],
            "total": len(results),
        }

    def _tool_check_inventory(self, context: TurnContext, args: CheckInventoryArgs) -> Dict[str, Any]:
        profile = context.profile
        found = pick_product_by_id_or_name(context.products, args.product_id, args.product_name)
        if found is None:
            found = self._catalog.get_product(profile.last_mentioned_product_id)
        if found is None and profile.last_shown_product_ids:
            found = self._catalog.get_product(profile.last_shown_product_ids[0])
        if found is None:
            context.forced_text = PRODUCT_NOT_FOUND_REPLY
            return {"found": False, "message": "Product not found."}
        profile.last_mentioned_product_id = found.id
        color_available: Optional[bool] = None
        if args.color:
            color_available = any(color_matches(args.color, option) for option in found.colors)
            if color_available:
                context.forced_text = f"Yep, {found.name} is available in {args.color}."
            else:
                context.forced_text = f"{found.name} is not available in {args.color}, but I can show close options."
        else:
            context.forced_text = f"{found.name} is in stock, and we've got {found.stock} left right now."
        context.add_cards([found])
        return {
            "found": True,
            "productId": found.id,
            "stock": found.stock,
            "colors": list(found.colors),
            "requestedColor": args.color,
            "colorAvailable": color_available,
        }

    def _tool_add_to_cart(self, context: TurnContext, args: AddToCartArgs) -> Dict[str, Any]:
        found = self._catalog.get_product(args.product_id)
        if found is None:
            context.forced_text = ADD_NOT_FOUND_REPLY
            return {"ok": False, "message": "Product not found."}
        self._add_product(context, found, args.quantity)
        context.forced_text = (
            f"Bet. I added {args.quantity} x {found.name} to your cart. Want me to take you to checkout?"
        )
        return {"ok": True, "added": {"productId": found.id, "quantity": args.quantity, "name": found.name}}

    def _tool_sort_products(self, context: TurnContext, args: SortProductsArgs) -> Dict[str, Any]:
        context.profile.preferred_sort = args.sort_by
        context.actions.append(SortProductsAction(sortBy=args.sort_by))
        top = sort_products(context.products, args.sort_by)[:4]
        context.add_cards(top)
        context.profile.show_products([product.id for product in top])
        context.forced_text = SORT_REPLIES[args.sort_by]
        return {"ok": True, "sortBy": args.sort_by}

    def _tool_apply_coupon(self, context: TurnContext, args: ApplyCouponArgs) -> Dict[str, Any]:
        # Tone is judged on the shopper's words plus the model's stated reason.
        signal = f"{context.message} {args.reason}".strip()
        coupon = self._coupon_policy.build_coupon_from_reason(signal, context.chat_context.cartTotal)
        context.actions.append(
            ApplyCouponAction(
                code=coupon.code,
                discountAmount=coupon.discount_amount,
                reason=args.reason or context.message,
            )
        )
        context.forced_text = coupon_reply(coupon)
        return {"ok": True, "code": coupon.code, "discountAmount": coupon.discount_amount}
