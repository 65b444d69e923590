from __future__ import annotations

import logging
import os
import secrets
import string
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .agent import RUDE_REPLY, ClerkAgent
from .catalog import Catalog, to_product_card
from .config import ClerkNotConfiguredError, load_settings
from .coupons import CouponPolicy
from .gemini_client import GeminiClient
from .matcher import ProductMatcher
from .models import ChatRequest, ChatResponse, NegotiateRequest, NegotiateResponse, ProductCard
from .profile_store import InMemoryProfileStore

BASE_DIR = Path(__file__).resolve().parent

SESSION_COOKIE = "clerk_session"
SESSION_MAX_AGE_SEC = 60 * 60 * 24 * 30

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("clerk").setLevel(log_level)
logger = logging.getLogger("clerk.app")

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

app = FastAPI(title="The Clerk Storefront Assistant")

settings = load_settings()
catalog = Catalog.from_file(settings.catalog_path)
profile_store = InMemoryProfileStore(ttl_sec=settings.profile_ttl_sec, max_profiles=settings.max_profiles)
coupon_policy = CouponPolicy()

_agent: Optional[ClerkAgent] = None


def get_agent() -> ClerkAgent:
    """Purpose: Build the Clerk lazily on the first chat request.
    Inputs/Outputs: No inputs; returns the shared ClerkAgent.
    Side Effects / State: Configures the Gemini SDK once and caches the agent.
    Dependencies: Uses settings, GeminiClient, ProductMatcher, and module singletons.
    Failure Modes: Raises ClerkNotConfiguredError when GEMINI_API_KEY is empty.
    If Removed: The chat endpoint has no orchestrator to call.
    Testing Notes: Override via app.dependency_overrides with a fake-backed agent.
    """
    # Fail fast before any profile is touched when the key is missing.
    global _agent
    if not settings.chat_configured:
        raise ClerkNotConfiguredError("GEMINI_API_KEY is required")
    if _agent is None:
        gemini = GeminiClient(settings)
        matcher = ProductMatcher(
            gemini,
            settings.prompts_dir,
            model=settings.gemini_model_match,
            limit=settings.match_limit,
        )
        _agent = ClerkAgent(
            catalog=catalog,
            profile_store=profile_store,
            matcher=matcher,
            gemini=gemini,
            prompts_dir=settings.prompts_dir,
            coupon_policy=coupon_policy,
        )
    return _agent


def new_session_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(8))
    return f"clerk_{int(time.time() * 1000)}_{suffix}"


@app.exception_handler(ClerkNotConfiguredError)
async def not_configured_handler(request: Request, exc: ClerkNotConfiguredError) -> JSONResponse:
    logger.error("chat not configured: %s", exc)
    return JSONResponse(status_code=500, content={"message": "Gemini key not configured."})


@app.post("/api/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    request: Request,
    response: Response,
    agent: ClerkAgent = Depends(get_agent),
):
    """Purpose: Handle one Clerk chat turn.
    Inputs/Outputs: Input is ChatRequest plus the session cookie; output is a
        ChatResponse, or a JSON error body.
    Side Effects / State: Sets the session cookie; the agent commits the profile.
    Dependencies: Uses ClerkAgent.handle_message and new_session_id.
    Failure Modes: Empty message -> 400; unexpected exceptions -> 500 with
        "AI is currently unavailable." and code clerk_internal_error.
    If Removed: Core chat functionality is unavailable.
    Testing Notes: Send "show me some footwear" and verify Footwear cards.
    """
    # Resolve the session cookie, then run the turn.
    message = (payload.message or "").strip()
    if not message:
        return JSONResponse(status_code=400, content={"message": "A non-empty message is required."})
    session_id = request.cookies.get(SESSION_COOKIE) or new_session_id()
    try:
        result = agent.handle_message(session_id, message, payload.context)
    except Exception as exc:
        logger.exception("session=%s chat failed", session_id)
        return JSONResponse(
            status_code=500,
            content={
                "message": "AI is currently unavailable.",
                "error": str(exc) or exc.__class__.__name__,
                "code": "clerk_internal_error",
            },
        )
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=SESSION_MAX_AGE_SEC,
        httponly=True,
        samesite="lax",
    )
    return result


@app.post("/api/negotiate", response_model=NegotiateResponse)
def negotiate(payload: NegotiateRequest) -> NegotiateResponse:
    """Purpose: Standalone coupon negotiation outside the chat flow.
    Inputs/Outputs: Input is NegotiateRequest; output is NegotiateResponse.
    Side Effects / State: None; codes are not persisted.
    Dependencies: Uses CouponPolicy.build_coupon_from_reason.
    Failure Modes: None; rude messages get discountCode=None.
    If Removed: The cart drawer's "negotiate" box stops working.
    Testing Notes: "it's my birthday" with cartTotal 400 -> 20% and a BDAY- code.
    """
    # No deal means no code to hand out.
    coupon = coupon_policy.build_coupon_from_reason(payload.message, payload.cartTotal)
    if not coupon.is_deal:
        return NegotiateResponse(message=RUDE_REPLY, discountCode=None, discountAmount=0)
    return NegotiateResponse(
        message=f"Nice, your coupon {coupon.code} is live for {coupon.discount_amount}% off.",
        discountCode=coupon.code,
        discountAmount=coupon.discount_amount,
    )


@app.get("/api/products", response_model=List[ProductCard])
def list_products(
    category: Optional[str] = None,
    sort: Optional[str] = None,
    search: Optional[str] = None,
) -> List[ProductCard]:
    """Purpose: Storefront listing with category filter, search, and sort.
    Inputs/Outputs: Optional query params; output is a list of ProductCard.
    Side Effects / State: None.
    Dependencies: Uses Catalog.list_products and to_product_card.
    Failure Modes: Unknown sort keys keep catalog order.
    If Removed: The storefront grid cannot load.
    Testing Notes: ?category=Footwear&sort=price_asc returns 10, 19, 5.
    """
    # Filter and project to cards.
    return [to_product_card(product) for product in catalog.list_products(category, sort, search)]


@app.get("/api/products/{product_id}", response_model=ProductCard)
def get_product(product_id: int):
    """Return one product card, or 404 with a message body."""
    product = catalog.get_product(product_id)
    if product is None:
        return JSONResponse(status_code=404, content={"message": "Product not found"})
    return to_product_card(product)
