from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class ChatContext(BaseModel):
    """UI context the storefront sends with every chat message."""
    cartProductIds: List[int] = Field(default_factory=list)
    cartTotal: float = 0.0
    activeCategory: str = "all"
    preferredSort: str = ""
    recentlyViewedProductIds: List[int] = Field(default_factory=list)
    lastSuggestedProductId: Optional[int] = None
    lastSuggestedProductIds: List[int] = Field(default_factory=list)


class ChatRequest(BaseModel):
    """Request payload for the chat API."""
    message: str
    context: ChatContext = Field(default_factory=ChatContext)


class ProductCard(BaseModel):
    """Presentation projection of a catalog product."""
    id: int
    name: str
    description: str
    price: float
    rating: float
    reviewsCount: int
    category: str
    colors: List[str] = Field(default_factory=list)
    stock: int
    image: str
    url: str


class SearchProductsAction(BaseModel):
    type: Literal["search_products"] = "search_products"
    query: str = ""
    category: Optional[str] = None


class SortProductsAction(BaseModel):
    type: Literal["sort_products"] = "sort_products"
    sortBy: Literal["price_asc", "price_desc", "rating"]


class AddToCartAction(BaseModel):
    type: Literal["add_to_cart"] = "add_to_cart"
    productId: int
    quantity: int = 1


class ApplyCouponAction(BaseModel):
    type: Literal["apply_coupon"] = "apply_coupon"
    code: str
    discountAmount: int
    reason: Optional[str] = None


class NavigateCheckoutAction(BaseModel):
    type: Literal["navigate_checkout"] = "navigate_checkout"


ClerkAction = Annotated[
    Union[
        SearchProductsAction,
        SortProductsAction,
        AddToCartAction,
        ApplyCouponAction,
        NavigateCheckoutAction,
    ],
    Field(discriminator="type"),
]


class ResponseData(BaseModel):
    productsCount: int
    personalized: bool


class ChatResponse(BaseModel):
    """Response envelope returned by the chat API."""
    message: str
    content: str
    action: Optional[ClerkAction] = None
    actions: List[ClerkAction] = Field(default_factory=list)
    products: List[ProductCard] = Field(default_factory=list)
    data: ResponseData
    role: Literal["assistant"] = "assistant"


class NegotiateRequest(BaseModel):
    """Request payload for the standalone negotiation endpoint."""
    message: str
    cartTotal: float = 0.0


class NegotiateResponse(BaseModel):
    message: str
    discountCode: Optional[str] = None
    discountAmount: int = 0
