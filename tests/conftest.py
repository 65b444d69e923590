"""Shared fixtures: seed catalog, scripted Gemini fake, deterministic coupons."""

from typing import Any, List, Optional

import pytest

from clerk.agent import ClerkAgent
from clerk.catalog import Catalog
from clerk.config import BASE_DIR
from clerk.coupons import CouponPolicy
from clerk.gemini_client import ModelReply
from clerk.matcher import ProductMatcher
from clerk.profile_store import InMemoryProfileStore

CATALOG_PATH = BASE_DIR / "data" / "products.json"
PROMPTS_DIR = BASE_DIR / "prompts"


class FakeGemini:
    """Scripted stand-in for GeminiClient.

    Each reply attribute may be a value or an Exception instance to raise.
    """

    def __init__(
        self,
        text_reply: Any = "",
        tool_reply: Any = None,
        content_reply: Any = "Bet, tell me the vibe and I'll pull picks.",
    ) -> None:
        self.text_reply = text_reply
        self.tool_reply = tool_reply if tool_reply is not None else ModelReply()
        self.content_reply = content_reply
        self.text_calls: List[dict] = []
        self.tool_calls: List[dict] = []
        self.content_calls: List[dict] = []

    def generate_text(self, prompt: str, model: Optional[str] = None, json_mode: bool = False, **kwargs) -> str:
        self.text_calls.append({"prompt": prompt, "model": model, "json_mode": json_mode})
        if isinstance(self.text_reply, Exception):
            raise self.text_reply
        return self.text_reply

    def generate_with_tools(self, contents, tools, system_instruction=None, **kwargs) -> ModelReply:
        self.tool_calls.append({"contents": contents, "tools": tools, "system_instruction": system_instruction})
        if isinstance(self.tool_reply, Exception):
            raise self.tool_reply
        return self.tool_reply

    def generate_content(self, contents, system_instruction=None, **kwargs) -> str:
        self.content_calls.append({"contents": contents, "system_instruction": system_instruction})
        if isinstance(self.content_reply, Exception):
            raise self.content_reply
        return self.content_reply


@pytest.fixture
def catalog() -> Catalog:
    return Catalog.from_file(CATALOG_PATH)


@pytest.fixture
def products(catalog):
    return catalog.get_products()


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def coupon_policy() -> CouponPolicy:
    return CouponPolicy(suffix_generator=lambda: "TEST")


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore(ttl_sec=3600, max_profiles=100)


@pytest.fixture
def make_agent(catalog, profile_store, coupon_policy):
    """Factory so each test can script its own Gemini fake."""

    def _make(gemini: Optional[FakeGemini] = None) -> ClerkAgent:
        gemini = gemini or FakeGemini()
        matcher = ProductMatcher(gemini, PROMPTS_DIR, limit=4)
        return ClerkAgent(
            catalog=catalog,
            profile_store=profile_store,
            matcher=matcher,
            gemini=gemini,
            prompts_dir=PROMPTS_DIR,
            coupon_policy=coupon_policy,
        )

    return _make
