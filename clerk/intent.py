"""Lexical intent extraction for Clerk messages.

Everything here is table-driven and deterministic: category synonyms (tolerant of
plurals and common typos), product-type nouns, lifestyle vibes, colours,
quantities, and the yes/no phrasing used while a checkout confirmation is pending.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .utils import has_any_term, normalize_text, tokenize

CATEGORY_SYNONYMS: Dict[str, str] = {
    # Footwear
    "footwear": "Footwear",
    "fotwear": "Footwear",
    "footware": "Footwear",
    "footwere": "Footwear",
    "shoe": "Footwear",
    "shoes": "Footwear",
    "shoez": "Footwear",
    "shoos": "Footwear",
    "sneaker": "Footwear",
    "sneakers": "Footwear",
    "sneakerz": "Footwear",
    "snekers": "Footwear",
    "sneekers": "Footwear",
    "trainers": "Footwear",
    "kicks": "Footwear",
    "boot": "Footwear",
    "boots": "Footwear",
    "bootz": "Footwear",
    "loafer": "Footwear",
    "loafers": "Footwear",
    "lofers": "Footwear",
    "espadrille": "Footwear",
    "espadrilles": "Footwear",
    "sandal": "Footwear",
    "sandals": "Footwear",
    # Clothing
    "clothing": "Clothing",
    "clothes": "Clothing",
    "cloths": "Clothing",
    "clothng": "Clothing",
    "clotheing": "Clothing",
    "apparel": "Clothing",
    "outfit": "Clothing",
    "outfits": "Clothing",
    "shirt": "Clothing",
    "shirts": "Clothing",
    "shirtz": "Clothing",
    "shrt": "Clothing",
    "tee": "Clothing",
    "tees": "Clothing",
    "tshirt": "Clothing",
    "dress": "Clothing",
    "dresses": "Clothing",
    "dres": "Clothing",
    "blazer": "Clothing",
    "blazers": "Clothing",
    "blazzer": "Clothing",
    "jacket": "Clothing",
    "jackets": "Clothing",
    "chino": "Clothing",
    "chinos": "Clothing",
    "pants": "Clothing",
    "trousers": "Clothing",
    "sweater": "Clothing",
    "sweaters": "Clothing",
    "jumper": "Clothing",
    # Accessories
    "accessory": "Accessories",
    "accessories": "Accessories",
    "accesories": "Accessories",
    "accessorys": "Accessories",
    "acessories": "Accessories",
    "sunglasses": "Accessories",
    "sunglass": "Accessories",
    "sunnies": "Accessories",
    "shades": "Accessories",
    "tie": "Accessories",
    "ties": "Accessories",
    "belt": "Accessories",
    "belts": "Accessories",
    "watch": "Accessories",
    "watches": "Accessories",
    "hat": "Accessories",
    "hats": "Accessories",
    "fedora": "Accessories",
    "bag": "Accessories",
    "bags": "Accessories",
    "tote": "Accessories",
    "duffel": "Accessories",
    "scarf": "Accessories",
    "scarves": "Accessories",
}

# Message-side product-type nouns -> canonical type.
PRODUCT_TYPE_SYNONYMS: Dict[str, str] = {
    "boot": "boots",
    "boots": "boots",
    "bootz": "boots",
    "loafer": "loafers",
    "loafers": "loafers",
    "lofers": "loafers",
    "sunglass": "sunglasses",
    "sunglasses": "sunglasses",
    "sunnies": "sunglasses",
    "shades": "sunglasses",
    "aviators": "sunglasses",
    "shirt": "shirts",
    "shirts": "shirts",
    "shirtz": "shirts",
    "shrt": "shirts",
    "tee": "shirts",
    "tees": "shirts",
    "dress": "dress",
    "dresses": "dress",
    "dres": "dress",
    "blazer": "blazer",
    "blazers": "blazer",
    "blazzer": "blazer",
    "chino": "chinos",
    "chinos": "chinos",
    "tie": "tie",
    "ties": "tie",
    "belt": "belt",
    "belts": "belt",
    "watch": "watch",
    "watches": "watch",
    "hat": "hat",
    "hats": "hat",
    "fedora": "hat",
    "bag": "bag",
    "bags": "bag",
    "tote": "bag",
    "duffel": "bag",
    "scarf": "scarf",
    "scarves": "scarf",
}

# Product-side noun detection over name + description, in priority order.
PRODUCT_TYPE_PATTERNS: Sequence = (
    ("boots", re.compile(r"\bboots?\b")),
    ("loafers", re.compile(r"\bloafers?\b")),
    ("sunglasses", re.compile(r"\bsunglass(?:es)?\b|\baviators?\b")),
    ("shirts", re.compile(r"\bshirts?\b")),
    ("dress", re.compile(r"\bdress(?:es)?\b")),
    ("blazer", re.compile(r"\bblazers?\b")),
    ("chinos", re.compile(r"\bchinos?\b")),
    ("tie", re.compile(r"\bties?\b")),
    ("belt", re.compile(r"\bbelts?\b")),
    ("watch", re.compile(r"\bwatch(?:es)?\b")),
    ("hat", re.compile(r"\bhats?\b|\bfedora\b")),
    ("scarf", re.compile(r"\bscarf\b|\bscarves\b")),
    ("bag", re.compile(r"\bbags?\b|\btote\b|\bduffel\b")),
)

DEFAULT_TYPE_BY_CATEGORY: Dict[str, str] = {
    "footwear": "shoes",
    "clothing": "apparel",
    "accessories": "accessory",
}

VIBE_KEYWORDS: Dict[str, List[str]] = {
    "formal": ["formal", "wedding", "weddings", "suit", "office", "interview", "elegant", "classy", "black tie"],
    "luxury": ["luxury", "luxurious", "premium", "fancy", "designer", "high end", "expensive", "bougie"],
    "casual": ["casual", "chill", "relaxed", "everyday", "laid back", "laidback", "comfy"],
    "minimal": ["minimal", "minimalist", "simple", "clean", "understated"],
    "summer": ["summer", "beach", "vacation", "holiday", "sunny", "italy", "tropical"],
    "smart-casual": ["smart casual", "smartcasual", "business casual", "dinner"],
    "occasion": ["party", "occasion", "event", "gala", "wedding", "brunch"],
}

PRODUCT_VIBE_PATTERNS: Dict[str, re.Pattern] = {
    "formal": re.compile(r"\b(formal|wedding|weddings|suit|elegan\w*|sophisticat\w*|silk tie|oxford)\b"),
    "luxury": re.compile(r"\b(luxur\w*|premium|cashmere|silk|italian|italy|handmade|full grain|hand stitched)\b"),
    "casual": re.compile(r"\b(casual|relaxed|everyday|canvas|denim|tote|versatile|staple)\b"),
    "minimal": re.compile(r"\b(minimal\w*|clean|simple|classic)\b"),
    "summer": re.compile(r"\b(summer|linen|beach|straw|breathable|lightweight|sun|uv400)\b"),
    "smart-casual": re.compile(r"\b(smart casual|unstructured|chinos|loafers?|blazer)\b"),
    "occasion": re.compile(r"\b(wedding|weddings|party|parties|occasion|event|garden)\b"),
}

DEFAULT_VIBE_BY_CATEGORY: Dict[str, str] = {
    "footwear": "smart-casual",
    "clothing": "casual",
    "accessories": "minimal",
}

ACTION_VERBS = {
    "need",
    "needs",
    "want",
    "wanna",
    "show",
    "find",
    "looking",
    "look",
    "search",
    "recommend",
    "suggest",
    "shop",
    "shopping",
    "browse",
    "see",
}

BASIC_COLORS = [
    "blue",
    "red",
    "green",
    "black",
    "white",
    "brown",
    "tan",
    "grey",
    "gray",
    "navy",
    "beige",
    "pink",
    "gold",
    "silver",
    "olive",
    "khaki",
]

AFFIRM_TERMS = {
    "yes",
    "yeah",
    "yea",
    "yep",
    "yup",
    "sure",
    "ok",
    "okay",
    "okey",
    "proceed",
    "lets go",
    "let s go",
    "checkout",
    "check out",
    "go ahead",
    "do it",
    "bet",
}
NEGATE_TERMS = {
    "no",
    "nah",
    "nope",
    "later",
    "cancel",
    "stop",
    "not now",
    "not yet",
    "maybe later",
}

QUANTITY_RE = re.compile(r"\b(\d{1,2})\s*(x|qty|quantity|pieces?)?\b", re.IGNORECASE)
ADD_TO_CART_RES = (
    re.compile(r"add\s+(this|that|it)\b", re.IGNORECASE),
    re.compile(r"add.*\bcart\b", re.IGNORECASE),
    re.compile(r"buy\s+(this|that|it)\b", re.IGNORECASE),
    re.compile(r"checkout\s+(this|that|it)\b", re.IGNORECASE),
)
PURCHASE_RE = re.compile(r"(add to cart|\bbuy\b|checkout|purchase)", re.IGNORECASE)
DISCOUNT_RE = re.compile(r"\b(discount|coupon|deal|negotiate|promo|birthday|bday|buying two)\b", re.IGNORECASE)
CHEAP_RE = re.compile(r"(cheaper|cheap|budget|low price|affordable)", re.IGNORECASE)
PRONOUN_RE = re.compile(r"\b(this|that|it)\b", re.IGNORECASE)
BROWSE_VERB_RE = re.compile(r"\b(show|find|search|browse|recommend|suggest|looking)\b", re.IGNORECASE)


@dataclass
class IntentSignals:
    """Structured extraction of category/type/vibe/action from a free-text message."""
    wants_products: bool = False
    category: Optional[str] = None
    product_types: List[str] = field(default_factory=list)
    vibes: List[str] = field(default_factory=list)

    @property
    def has_intent(self) -> bool:
        return bool(self.category or self.product_types or self.vibes)

    def as_dict(self) -> Dict[str, object]:
        return {
            "wantsProducts": self.wants_products,
            "category": self.category,
            "productTypes": list(self.product_types),
            "vibes": list(self.vibes),
        }


def extract_intent_signals(message: str, categories: Iterable[str]) -> IntentSignals:
    """Purpose: Extract category, product-type, vibe, and browse signals from a message.
    Inputs/Outputs: Inputs are raw message text and the catalog's category labels;
        output is IntentSignals.
    Side Effects / State: None.
    Dependencies: Uses tokenize, CATEGORY_SYNONYMS, PRODUCT_TYPE_SYNONYMS, detect_vibes.
    Failure Modes: A synonym whose category is not in the catalog leaves category unset.
    If Removed: Category/type/vibe search and the intent-consistency guard have no input.
    Testing Notes: "any fotwear?" -> Footwear when the catalog has Footwear; None otherwise.
    """
    # Map tokens through the synonym tables; first category hit wins.
    tokens = tokenize(message)
    known = {label.lower(): label for label in categories if label}
    category: Optional[str] = None
    product_types: List[str] = []
    for token in tokens:
        canonical = CATEGORY_SYNONYMS.get(token)
        if category is None and canonical and canonical.lower() in known:
            category = known[canonical.lower()]
        product_type = PRODUCT_TYPE_SYNONYMS.get(token)
        if product_type and product_type not in product_types:
            product_types.append(product_type)
    vibes = detect_vibes(message)
    wants_products = bool(set(tokens) & ACTION_VERBS) or bool(category or product_types or vibes)
    return IntentSignals(
        wants_products=wants_products,
        category=category,
        product_types=product_types,
        vibes=vibes,
    )


def detect_vibes(message: str) -> List[str]:
    """Return lifestyle vibes whose keywords appear as whole words in the message."""
    normalized = normalize_text(message)
    return [vibe for vibe, keywords in VIBE_KEYWORDS.items() if has_any_term(normalized, keywords)]


def infer_product_types(name: str, description: str, category: str) -> List[str]:
    """Purpose: Infer the product-type nouns that describe a single product.
    Inputs/Outputs: Inputs are product name, description, and category; output is a
        non-empty list of canonical type labels.
    Side Effects / State: None.
    Dependencies: Uses PRODUCT_TYPE_PATTERNS and DEFAULT_TYPE_BY_CATEGORY.
    Failure Modes: Falls back to one generic type per category when no noun matches.
    If Removed: Type narrowing and keyword scoring lose product-side types.
    Testing Notes: "Chelsea Boots" -> ["boots"]; "Silk Scarf" -> ["scarf"], not "bag" via "bag handle".
    """
    # Name hits take precedence so descriptions like "bag handle" do not mislabel.
    for text in (name, description):
        normalized = normalize_text(text)
        found = [label for label, pattern in PRODUCT_TYPE_PATTERNS if pattern.search(normalized)]
        if found:
            return found
    fallback = DEFAULT_TYPE_BY_CATEGORY.get((category or "").lower())
    return [fallback or normalize_text(category) or "item"]


def infer_product_vibes(name: str, description: str, category: str) -> List[str]:
    """Purpose: Infer lifestyle vibes for a single product from its copy.
    Inputs/Outputs: Inputs are name, description, and category; output is a vibe list.
    Side Effects / State: None.
    Dependencies: Uses PRODUCT_VIBE_PATTERNS and DEFAULT_VIBE_BY_CATEGORY.
    Failure Modes: Falls back to one default vibe per category when nothing matches.
    If Removed: Vibe narrowing and keyword scoring lose product-side vibes.
    Testing Notes: "Classic White Linen Shirt" includes "summer" and "minimal".
    """
    # Scan regex families over the combined product copy.
    normalized = normalize_text(f"{name} {description}")
    vibes = [vibe for vibe, pattern in PRODUCT_VIBE_PATTERNS.items() if pattern.search(normalized)]
    if vibes:
        return vibes
    return [DEFAULT_VIBE_BY_CATEGORY.get((category or "").lower(), "casual")]


def extract_requested_color(message: str) -> Optional[str]:
    """Purpose: Pull the first basic colour named in a message.
    Inputs/Outputs: Input is raw text; output is a colour name or None.
    Side Effects / State: None.
    Dependencies: Uses BASIC_COLORS in list order.
    Failure Modes: Only the fixed colour list is recognised ("burgundy" is not).
    If Removed: Colour availability checks never trigger.
    Testing Notes: "got this in navy or black?" -> "black" (list order, not message order).
    """
    # Whole-word match so "stand" does not read as "tan".
    normalized = normalize_text(message)
    for color in BASIC_COLORS:
        if has_any_term(normalized, (color,)):
            return color
    return None


def color_matches(requested_color: str, available_color: str) -> bool:
    """Purpose: Fuzzy-compare a requested colour with a product colour label.
    Inputs/Outputs: Inputs are two colour strings; output is True when either
        normalized string contains the other.
    Side Effects / State: None.
    Dependencies: Uses normalize_text.
    Failure Modes: Empty strings never match.
    If Removed: Colour availability answers cannot be computed.
    Testing Notes: ("blue", "Light Blue") -> True; ("red", "Navy") -> False.
    """
    # Case-insensitive substring match in either direction.
    requested = normalize_text(requested_color)
    available = normalize_text(available_color)
    if not requested or not available:
        return False
    if requested == available:
        return True
    return requested in available or available in requested


def extract_requested_quantity(message: str) -> int:
    """Purpose: Extract a requested quantity from a message.
    Inputs/Outputs: Input is raw text; output is an int in [1, 10].
    Side Effects / State: None.
    Dependencies: Uses QUANTITY_RE (1-2 digits, optional x/qty/quantity/pieces).
    Failure Modes: Defaults to 1 when no number is present.
    If Removed: Add-to-cart actions cannot honour "add 3x".
    Testing Notes: "add 3x to cart" -> 3; "add 99 items" -> 10; "add to cart" -> 1.
    """
    # Clamp to the storefront's per-line limit.
    match = QUANTITY_RE.search(message or "")
    if not match:
        return 1
    try:
        quantity = int(match.group(1))
    except ValueError:
        return 1
    return max(1, min(10, quantity))


def wants_add_to_cart(message: str) -> bool:
    """True for explicit add-to-cart phrasing ("add this", "add ... cart", "buy it")."""
    return any(pattern.search(message or "") for pattern in ADD_TO_CART_RES)


def signals_purchase(message: str) -> bool:
    return bool(PURCHASE_RE.search(message or ""))


def is_discount_request(message: str) -> bool:
    return bool(DISCOUNT_RE.search(message or ""))


def is_budget_request(message: str) -> bool:
    return bool(CHEAP_RE.search(message or ""))


def references_current_item(message: str) -> bool:
    """True when the message points at the item in focus ("this", "that", "it")."""
    return bool(PRONOUN_RE.search(message or ""))


def has_browse_verb(message: str) -> bool:
    return bool(BROWSE_VERB_RE.search(message or ""))


def is_affirmative(message: str) -> bool:
    """Purpose: Detect a yes-style reply to the pending checkout question.
    Inputs/Outputs: Input is raw text; output is True on affirmative phrasing.
    Side Effects / State: None.
    Dependencies: Uses normalize_text, has_any_term, and AFFIRM_TERMS.
    Failure Modes: Mixed replies ("yes but not now") count as affirmative.
    If Removed: Checkout confirmation can never navigate to checkout.
    Testing Notes: "yes" / "let's go" / "ok proceed" -> True; "yesterday" -> False.
    """
    # Whole-term match on the normalized message.
    return has_any_term(normalize_text(message), AFFIRM_TERMS)


def is_negative(message: str) -> bool:
    """True for no-style replies ("nah", "maybe later", "cancel")."""
    return has_any_term(normalize_text(message), NEGATE_TERMS)
