"""Product Matcher: ranking catalog products against a query or extracted intent.

Two strategies are layered:
    Delegated semantic match:
        The compacted catalog plus query and hints go to the LLM, which returns
        product ids as strict JSON. Ids are resolved against the catalog and then
        narrowed by category/type/vibe hints without ever narrowing to nothing.
    Keyword score:
        Deterministic fallback used when the delegated call fails or returns
        nothing usable. Scores are computed from token hits, inferred types and
        vibes, shopper history, and rating; ties keep catalog order.

The module also owns direct-mention scoring (a product named in the message)
and product resolution for pronouns ("add this", "got it in blue?").
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .catalog import Product
from .intent import (
    IntentSignals,
    PRODUCT_TYPE_SYNONYMS,
    infer_product_types,
    infer_product_vibes,
)
from .profile_store import ShopperProfile
from .prompt_loader import render_prompt
from .utils import coerce_int_list, normalize_text, safe_json_loads, tokenize

logger = logging.getLogger("clerk.matcher")

DEFAULT_LIMIT = 4
DIRECT_MENTION_THRESHOLD = 8
# Product nouns that switch on the category/description overlap bonus.
DIRECT_MENTION_NOUNS = ("dress", "shirt", "blazer", "chinos", "sunglasses", "loafers", "boots", "tie")

RESOLUTION_SOURCES = ("explicit", "profile", "context", "none")


@dataclass(frozen=True)
class ProductResolution:
    """Which product a turn refers to, and where that answer came from."""
    source: str
    product: Optional[Product] = None

    @property
    def found(self) -> bool:
        return self.product is not None


def product_types(product: Product) -> List[str]:
    return infer_product_types(product.name, product.description, product.category)


def product_vibes(product: Product) -> List[str]:
    return infer_product_vibes(product.name, product.description, product.category)


def _singular(token: str) -> str:
    if len(token) > 3 and token.endswith("es") and token[:-2] in PRODUCT_TYPE_SYNONYMS:
        return token[:-2]
    if len(token) > 3 and token.endswith("s"):
        return token[:-1]
    return token


def _type_matches(token: str, types: Sequence[str]) -> bool:
    # Plural-insensitive; message typos go through the synonym table first.
    canonical = PRODUCT_TYPE_SYNONYMS.get(token, token)
    wanted = {_singular(canonical), _singular(token)}
    return any(_singular(label) in wanted for label in types)


def narrow(products: List[Product], predicate: Callable[[Product], bool]) -> List[Product]:
    """Keep the narrower set only when it is non-empty."""
    narrowed = [product for product in products if predicate(product)]
    return narrowed if narrowed else products


def filter_by_intent(
    products: List[Product],
    category: Optional[str] = None,
    types: Sequence[str] = (),
    vibes: Sequence[str] = (),
) -> List[Product]:
    """Purpose: Apply category as the primary filter and type/vibe as progressive narrowing.
    Inputs/Outputs: Inputs are candidate products and optional category/types/vibes;
        output is the narrowed product list in catalog order.
    Side Effects / State: None.
    Dependencies: Uses narrow, product_types, product_vibes.
    Failure Modes: Never returns an empty list when the category filter alone is non-empty.
    If Removed: Category/type/vibe search and the intent guard cannot build their pool.
    Testing Notes: category="Footwear", types=["boots"] -> only Chelsea-style boots.
    """
    # Category is exact (case-insensitive); type and vibe only narrow when they can.
    pool = list(products)
    if category:
        wanted = category.lower()
        pool = [product for product in pool if product.category.lower() == wanted]
    if types:
        pool = narrow(pool, lambda product: any(_type_matches(label, product_types(product)) for label in types))
    if vibes:
        pool = narrow(pool, lambda product: bool(set(vibes) & set(product_vibes(product))))
    return pool


def keyword_score(product: Product, tokens: Sequence[str], profile: Optional[ShopperProfile] = None) -> float:
    """Purpose: Compute the deterministic relevance score of one product for a query.
    Inputs/Outputs: Inputs are a product, query tokens, and an optional profile; output
        is a float score (higher is better).
    Side Effects / State: None; no randomness.
    Dependencies: Uses product_types, product_vibes, and profile history lists.
    Failure Modes: Empty tokens still score by history and rating.
    If Removed: The keyword fallback cannot rank products.
    Testing Notes: With no profile and no tokens the score equals product.rating.
    """
    # 2 per haystack hit, 2.5 per type hit, 2 per vibe hit, then history and rating.
    haystack = normalize_text(f"{product.name} {product.description} {product.category}")
    types = product_types(product)
    vibes = product_vibes(product)
    score = 0.0
    for token in tokens:
        if token in haystack:
            score += 2
        if _type_matches(token, types):
            score += 2.5
        if token in vibes or any(token in vibe.split("-") for vibe in vibes):
            score += 2
    if profile is not None:
        if product.category in profile.viewed_categories:
            score += 1.5
        if product.id in profile.recently_viewed_product_ids:
            score += 2
        if product.id in profile.added_product_ids:
            score += 1
    return score + product.rating


def keyword_search(
    query: str,
    products: List[Product],
    profile: Optional[ShopperProfile] = None,
    category: Optional[str] = None,
    max_price: Optional[float] = None,
    min_rating: Optional[float] = None,
    limit: int = DEFAULT_LIMIT,
) -> List[Product]:
    """Purpose: Rank products by keyword score with optional hard filters.
    Inputs/Outputs: Inputs are the query, candidates, profile, and filters; output is
        up to `limit` products, best first.
    Side Effects / State: None.
    Dependencies: Uses tokenize and keyword_score; relies on sorted() being stable.
    Failure Modes: Returns an empty list only when the hard filters exclude everything.
    If Removed: Every delegated-match failure leaves the shopper with no products.
    Testing Notes: Two calls with identical inputs return identical id lists.
    """
    # Filter first, then score; ties keep catalog order.
    tokens = tokenize(query)
    candidates = []
    for product in products:
        if category and product.category.lower() != category.lower():
            continue
        if max_price is not None and product.price > max_price:
            continue
        if min_rating is not None and product.rating < min_rating:
            continue
        candidates.append(product)
    ranked = sorted(candidates, key=lambda product: keyword_score(product, tokens, profile), reverse=True)
    return ranked[: max(0, limit)]


def top_rated(products: List[Product], category: Optional[str] = None, limit: int = DEFAULT_LIMIT) -> List[Product]:
    pool = products
    if category:
        pool = [product for product in products if product.category.lower() == category.lower()]
    return sorted(pool, key=lambda product: product.rating, reverse=True)[:limit]


def compact_catalog(products: List[Product]) -> List[Dict[str, object]]:
    """Catalog projection sent to the delegated matcher."""
    return [
        {
            "id": product.id,
            "name": product.name,
            "description": product.description,
            "category": product.category,
            "types": product_types(product),
            "vibes": product_vibes(product),
            "price": product.price,
            "rating": product.rating,
        }
        for product in products
    ]


class ProductMatcher:
    """Delegated semantic match with a deterministic keyword-score fallback."""

    def __init__(
        self,
        gemini: Optional[object],
        prompts_dir: Path,
        model: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        """Purpose: Configure the matcher with an optional LLM delegate.
        Inputs/Outputs: Inputs are the Gemini client (or None), prompt dir, model
            override, and default limit; no return value.
        Side Effects / State: Stores dependencies.
        Dependencies: Uses the semantic_match.txt prompt template.
        Failure Modes: None at init; gemini=None disables the delegated path.
        If Removed: Orchestrator steps 6-9 and the search tool cannot rank products.
        Testing Notes: Pass a fake client whose generate_text returns canned JSON.
        """
        # Keep the delegate and defaults for later calls.
        self._gemini = gemini
        self._prompt_path = prompts_dir / "semantic_match.txt"
        self._model = model
        self.limit = limit

    def semantic_match(
        self,
        query: str,
        products: List[Product],
        category: Optional[str] = None,
        product_type: Optional[str] = None,
        vibe: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Product]:
        """Purpose: Ask the LLM to pick products for a query and post-filter the answer.
        Inputs/Outputs: Inputs are the query, catalog, optional hints, and limit; output
            is a product list (possibly empty).
        Side Effects / State: One network call to the delegate.
        Dependencies: Uses render_prompt, compact_catalog, safe_json_loads, narrow.
        Failure Modes: Any exception or unparseable reply returns [] and logs a warning.
        If Removed: Free-form requests ("outfit for a beach wedding") rely on keywords only.
        Testing Notes: Reply {"productIds": [7, 99]} resolves to product 7 only.
        """
        # Call the delegate in JSON mode; failures degrade to an empty result.
        limit = limit or self.limit
        if self._gemini is None or not products:
            return []
        hints = {"category": category or "", "productType": product_type or "", "vibe": vibe or ""}
        prompt = render_prompt(
            self._prompt_path,
            {
                "CATALOG_JSON": json.dumps(compact_catalog(products), ensure_ascii=False),
                "QUERY": query,
                "HINTS_JSON": json.dumps(hints, ensure_ascii=False),
                "LIMIT": str(limit),
            },
        )
        try:
            raw = self._gemini.generate_text(prompt, model=self._model, json_mode=True)
        except Exception as exc:
            logger.warning("semantic_match failed query=%s error=%s", query, exc)
            logger.debug("semantic_match traceback", exc_info=True)
            return []
        data = safe_json_loads(raw) or {}
        by_id = {product.id: product for product in products}
        picked: List[Product] = []
        for product_id in coerce_int_list(data.get("productIds")):
            product = by_id.get(product_id)
            if product is not None and product not in picked:
                picked.append(product)

        resolved_category = category or _known_category(data.get("category"), products)
        if resolved_category:
            picked = [product for product in picked if product.category.lower() == resolved_category.lower()]
        if product_type:
            picked = narrow(picked, lambda product: _type_matches(product_type, product_types(product)))
        if vibe:
            picked = narrow(picked, lambda product: vibe in product_vibes(product))
        if not picked and resolved_category:
            picked = top_rated(products, resolved_category, limit)
        logger.info("semantic_match query=%s ids=%s", query, [product.id for product in picked[:limit]])
        return picked[:limit]

    def search(
        self,
        query: str,
        products: List[Product],
        profile: Optional[ShopperProfile] = None,
        category: Optional[str] = None,
        max_price: Optional[float] = None,
        min_rating: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[Product]:
        """Purpose: Run the delegated match, falling back to keyword scoring.
        Inputs/Outputs: Inputs are the query, catalog, profile, and filters; output is
            up to `limit` products.
        Side Effects / State: May call the delegate once.
        Dependencies: Uses semantic_match and keyword_search.
        Failure Modes: Never raises for delegate failures.
        If Removed: The search_products tool has no implementation.
        Testing Notes: A raising delegate still yields keyword results.
        """
        # Hard price/rating filters apply to both strategies.
        limit = limit or self.limit
        pool = [
            product
            for product in products
            if (max_price is None or product.price <= max_price)
            and (min_rating is None or product.rating >= min_rating)
        ]
        results = self.semantic_match(query, pool, category=category, limit=limit)
        if results:
            return results
        logger.info("search fallback=keyword query=%s", query)
        return keyword_search(query, pool, profile, category=category, limit=limit)

    def match_by_intent(
        self,
        signals: IntentSignals,
        products: List[Product],
        profile: Optional[ShopperProfile] = None,
        query: str = "",
        limit: Optional[int] = None,
    ) -> List[Product]:
        """Purpose: Intent search used by the category/type/vibe rule and the intent guard.
        Inputs/Outputs: Inputs are IntentSignals, catalog, profile, raw query; output
            is up to `limit` products from the intent-filtered pool.
        Side Effects / State: May call the delegate once.
        Dependencies: Uses filter_by_intent, semantic_match (with the first type
            and vibe as hints), and keyword_search.
        Failure Modes: Delegate failure or an empty pick falls back to keyword scoring.
        If Removed: "show me some footwear" cannot be answered.
        Testing Notes: Footwear signals return only Footwear products, with or
            without a delegate.
        """
        # Delegated pick over the intent pool first, keyword score second.
        limit = limit or self.limit
        pool = filter_by_intent(products, signals.category, signals.product_types, signals.vibes)
        ranking_query = " ".join([query, *signals.product_types, *signals.vibes]).strip()
        results = self.semantic_match(
            query or ranking_query,
            pool,
            category=signals.category,
            product_type=signals.product_types[0] if signals.product_types else None,
            vibe=signals.vibes[0] if signals.vibes else None,
            limit=limit,
        )
        if results:
            return results
        logger.info("match_by_intent fallback=keyword query=%s", ranking_query)
        return keyword_search(ranking_query, pool, profile, limit=limit)


def _known_category(value: object, products: List[Product]) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    wanted = value.strip().lower()
    for product in products:
        if product.category.lower() == wanted:
            return product.category
    return None


def find_direct_product_mention(message: str, products: List[Product]) -> Optional[Product]:
    """Purpose: Detect a product the shopper named explicitly.
    Inputs/Outputs: Inputs are raw message and catalog; output is the best product
        when its score reaches the threshold, else None.
    Side Effects / State: None.
    Dependencies: Uses normalize_text and DIRECT_MENTION_NOUNS.
    Failure Modes: Ties keep the earliest catalog product.
    If Removed: "is the floral summer dress in blue?" cannot target one product.
    Testing Notes: "leather loafers" -> Leather Loafers (2 tokens x 8 = 16 >= 8).
    """
    # +100 full name, +8 per long name token, extra overlap when a product noun appears.
    normalized = normalize_text(message)
    if not normalized:
        return None
    padded_words = set(normalized.split(" "))
    has_noun = any(noun in normalized for noun in DIRECT_MENTION_NOUNS)
    best: Optional[Product] = None
    best_score = -1
    for product in products:
        name = normalize_text(product.name)
        name_tokens = [token for token in name.split(" ") if len(token) >= 4]
        score = 0
        if name and name in normalized:
            score += 100
        for token in name_tokens:
            if token in normalized:
                score += 8
        if has_noun:
            if normalize_text(product.category) in normalized:
                score += 3
            for token in name_tokens:
                if token in normalized:
                    score += 3
            for token in normalize_text(product.description).split(" "):
                if len(token) >= 6 and token in padded_words:
                    score += 1
        if score > best_score:
            best, best_score = product, score
    if best is not None and best_score >= DIRECT_MENTION_THRESHOLD:
        return best
    return None


def pick_product_by_id_or_name(
    products: List[Product],
    product_id: Optional[int] = None,
    product_name: Optional[str] = None,
) -> Optional[Product]:
    """Id lookup first, then the first product whose name contains product_name."""
    if product_id is not None:
        for product in products:
            if product.id == product_id:
                return product
        return None
    if product_name and product_name.strip():
        wanted = product_name.strip().lower()
        for product in products:
            if wanted in product.name.lower():
                return product
    return None


def resolve_product(
    message: str,
    products: List[Product],
    profile: ShopperProfile,
    context_product_id: Optional[int] = None,
) -> ProductResolution:
    """Purpose: Decide which product a turn refers to.
    Inputs/Outputs: Inputs are the message, catalog, profile, and the context's
        last-suggested id; output is a ProductResolution tagged with its source.
    Side Effects / State: None.
    Dependencies: Uses find_direct_product_mention and catalog lookups.
    Failure Modes: Unknown ids fall through to the next source; returns source "none".
    If Removed: Pronoun-driven rules (add this, in blue, discount on this) cannot run.
    Testing Notes: Anchor 5 and no mention -> ("profile", Leather Loafers).
    """
    # Priority: explicit mention > profile anchor > context-supplied id.
    direct = find_direct_product_mention(message, products)
    if direct is not None:
        return ProductResolution("explicit", direct)
    by_id = {product.id: product for product in products}
    anchored = by_id.get(profile.last_mentioned_product_id) if profile.last_mentioned_product_id is not None else None
    if anchored is not None:
        return ProductResolution("profile", anchored)
    suggested = by_id.get(context_product_id) if context_product_id is not None else None
    if suggested is not None:
        return ProductResolution("context", suggested)
    return ProductResolution("none", None)
