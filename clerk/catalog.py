"""Catalog loading, lookup, and storefront listing for the Clerk.

The catalog is read-only reference data: products are loaded once from a JSON
file into Product records and exposed through get_products/get_product. The
conversational core never mutates it.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .models import ProductCard

logger = logging.getLogger("clerk.catalog")

SORT_OPTIONS = ("price_asc", "price_desc", "rating")


@dataclass(frozen=True)
class Product:
    """Normalized view of a catalog record."""
    id: int
    name: str
    description: str
    price: float
    rating: float
    category: str
    colors: Tuple[str, ...] = field(default_factory=tuple)
    stock: int = 0
    image: str = ""


@dataclass
class CatalogMeta:
    """Metadata describing the catalog file version for logging."""
    file_name: str
    updated_at: str
    sha256: str


class CatalogLoader:
    def __init__(self, path: Path) -> None:
        # Store the catalog file location for subsequent loads.
        self._path = path

    def load(self) -> Tuple[List[Product], CatalogMeta]:
        """Purpose: Load and normalize catalog data from the JSON file.
        Inputs/Outputs: No inputs; returns a list of Product and CatalogMeta.
        Side Effects / State: Reads file contents and computes hash/mtime.
        Dependencies: Uses json, hashlib, and parse_product.
        Failure Modes: JSON decode errors raise exceptions to the caller; malformed
            records are skipped with a warning.
        If Removed: The storefront and the Clerk have no products to work with.
        Testing Notes: Load the bundled products.json and validate 20 products.
        """
        # Read bytes for hashing and parse JSON into normalized products.
        raw_bytes = self._path.read_bytes()
        sha256 = hashlib.sha256(raw_bytes).hexdigest()
        updated_at = datetime.fromtimestamp(self._path.stat().st_mtime).isoformat()

        data = json.loads(raw_bytes.decode("utf-8-sig"))
        records: List[Dict[str, Any]]
        if isinstance(data, dict):
            records = data.get("items", [])
        elif isinstance(data, list):
            records = data
        else:
            records = []

        products: List[Product] = []
        for record in records:
            if not isinstance(record, dict):
                continue
            product = parse_product(record)
            if product is None:
                logger.warning("catalog=%s skipped malformed record=%s", self._path.name, record.get("id"))
                continue
            products.append(product)

        meta = CatalogMeta(file_name=self._path.name, updated_at=updated_at, sha256=sha256)
        return products, meta


def parse_product(record: Dict[str, Any]) -> Optional[Product]:
    """Purpose: Convert a raw catalog record into a Product.
    Inputs/Outputs: Input is a dict; output is a Product or None when id/name are unusable.
    Side Effects / State: None.
    Dependencies: Uses _to_float/_to_int for decimal strings such as "89.99".
    Failure Modes: Returns None for records without a numeric id or a name.
    If Removed: CatalogLoader cannot normalize records.
    Testing Notes: Price given as "120.00" becomes 120.0.
    """
    # Require an id and a name; everything else has a safe default.
    product_id = _to_int(record.get("id"))
    name = str(record.get("name") or "").strip()
    if product_id is None or not name:
        return None
    colors = record.get("colors") or []
    if not isinstance(colors, list):
        colors = []
    return Product(
        id=product_id,
        name=name,
        description=str(record.get("description") or "").strip(),
        price=_to_float(record.get("price")),
        rating=_to_float(record.get("rating")),
        category=str(record.get("category") or "").strip(),
        colors=tuple(str(color) for color in colors if str(color).strip()),
        stock=_to_int(record.get("stock")) or 0,
        image=str(record.get("image") or "").strip(),
    )


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class Catalog:
    """In-memory catalog snapshot keyed by product id."""

    def __init__(self, products: List[Product]) -> None:
        self._products = list(products)
        self._by_id: Dict[int, Product] = {product.id: product for product in self._products}

    @classmethod
    def from_file(cls, path: Path) -> "Catalog":
        """Purpose: Build a catalog snapshot from a JSON file.
        Inputs/Outputs: Input is the catalog path; output is a Catalog.
        Side Effects / State: Reads the file and logs its version metadata.
        Dependencies: Uses CatalogLoader.
        Failure Modes: Missing file or invalid JSON raise to the caller.
        If Removed: The app has to assemble the catalog by hand.
        Testing Notes: Point at a temp file with two records and check get_product.
        """
        # Load products and log which catalog version is being served.
        products, meta = CatalogLoader(path).load()
        logger.info(
            "catalog=%s products=%s updated_at=%s sha256=%s",
            meta.file_name,
            len(products),
            meta.updated_at,
            meta.sha256[:12],
        )
        return cls(products)

    def get_products(self) -> List[Product]:
        # Return a copy so callers cannot reorder the snapshot.
        return list(self._products)

    def get_product(self, product_id: Optional[int]) -> Optional[Product]:
        if product_id is None:
            return None
        return self._by_id.get(product_id)

    def categories(self) -> List[str]:
        """Distinct category labels in catalog order."""
        seen: List[str] = []
        for product in self._products:
            if product.category and product.category not in seen:
                seen.append(product.category)
        return seen

    def list_products(
        self,
        category: Optional[str] = None,
        sort: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Product]:
        """Purpose: Filter and sort products for the storefront listing.
        Inputs/Outputs: Optional category, sort key, and search string; returns products.
        Side Effects / State: None.
        Dependencies: Uses sort_products for ordering.
        Failure Modes: Unknown sort keys keep catalog order.
        If Removed: The product listing endpoint cannot filter or sort.
        Testing Notes: category="footwear" returns the three Footwear items.
        """
        # Apply category, then substring search, then ordering.
        products = self.get_products()
        if category and category.lower() != "all":
            wanted = category.lower()
            products = [product for product in products if product.category.lower() == wanted]
        if search:
            query = search.lower()
            products = [
                product
                for product in products
                if query in product.name.lower() or query in product.description.lower()
            ]
        if sort in SORT_OPTIONS:
            products = sort_products(products, sort)
        return products


def sort_products(products: List[Product], sort_by: str) -> List[Product]:
    """Order products by price (either direction) or rating; stable for ties."""
    if sort_by == "price_desc":
        return sorted(products, key=lambda product: product.price, reverse=True)
    if sort_by == "rating":
        return sorted(products, key=lambda product: product.rating, reverse=True)
    return sorted(products, key=lambda product: product.price)


def to_product_card(product: Product) -> ProductCard:
    """Purpose: Project a Product into the presentation card sent to the client.
    Inputs/Outputs: Input is a Product; output is a fresh ProductCard.
    Side Effects / State: None; cards are never cached.
    Dependencies: Uses the ProductCard pydantic model.
    Failure Modes: None.
    If Removed: Responses cannot render product cards.
    Testing Notes: rating 4.8 -> reviewsCount 144; rating 0.5 -> reviewsCount 24.
    """
    # Reviews count is derived from rating with a floor of 24.
    return ProductCard(
        id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        rating=product.rating,
        reviewsCount=max(24, int(round(product.rating * 30))),
        category=product.category,
        colors=list(product.colors),
        stock=product.stock,
        image=product.image,
        url=f"/product/{product.id}",
    )
