"""
Endpoint tests for the FastAPI transport adapter.
"""

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

import clerk.app as app_module

from conftest import FakeGemini


@pytest.fixture
def client(make_agent):
    agent = make_agent(FakeGemini())
    app_module.app.dependency_overrides[app_module.get_agent] = lambda: agent
    with TestClient(app_module.app) as test_client:
        yield test_client
    app_module.app.dependency_overrides.clear()


class ExplodingAgent:
    def handle_message(self, session_id, message, context=None):
        raise RuntimeError("boom")


class TestChatEndpoint:
    """Chat turn transport."""

    def test_footwear_turn_sets_session_cookie(self, client):
        response = client.post("/api/chat", json={"message": "show me some footwear", "context": {}})
        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "assistant"
        assert body["action"]["type"] == "search_products"
        assert body["action"]["category"] == "Footwear"
        assert body["data"]["productsCount"] == len(body["products"])
        assert all(card["category"] == "Footwear" for card in body["products"])
        assert response.cookies.get("clerk_session", "").startswith("clerk_")

    def test_cookie_keeps_profile_across_turns(self, client):
        first = client.post("/api/chat", json={"message": "tell me about the leather loafers"})
        assert [card["id"] for card in first.json()["products"]] == [5]
        second = client.post("/api/chat", json={"message": "add this to my cart"})
        assert second.json()["action"] == {"type": "add_to_cart", "productId": 5, "quantity": 1}
        third = client.post("/api/chat", json={"message": "yes"})
        assert third.json()["action"] == {"type": "navigate_checkout"}
        assert third.json()["products"] == []

    def test_empty_message_is_rejected(self, client):
        response = client.post("/api/chat", json={"message": "   "})
        assert response.status_code == 400

    def test_unexpected_error_is_generic(self, client):
        app_module.app.dependency_overrides[app_module.get_agent] = lambda: ExplodingAgent()
        response = client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 500
        assert response.json()["message"] == "AI is currently unavailable."
        assert response.json()["code"] == "clerk_internal_error"

    def test_missing_key_fails_fast(self, monkeypatch):
        monkeypatch.setattr(app_module, "settings", replace(app_module.settings, gemini_api_key=""))
        with TestClient(app_module.app) as test_client:
            response = test_client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 500
        assert response.json() == {"message": "Gemini key not configured."}


class TestNegotiateEndpoint:
    def test_birthday(self, client):
        response = client.post("/api/negotiate", json={"message": "it's my birthday!", "cartTotal": 400})
        body = response.json()
        assert body["discountAmount"] == 20
        assert body["discountCode"].startswith("BDAY-20-")

    def test_rude_gets_no_code(self, client):
        response = client.post("/api/negotiate", json={"message": "this store is trash", "cartTotal": 400})
        assert response.json()["discountCode"] is None
        assert response.json()["discountAmount"] == 0


class TestProductEndpoints:
    def test_listing_filter_and_sort(self, client):
        response = client.get("/api/products", params={"category": "footwear", "sort": "price_asc"})
        assert [card["id"] for card in response.json()] == [10, 19, 5]

    def test_listing_search(self, client):
        response = client.get("/api/products", params={"search": "fedora"})
        assert {card["id"] for card in response.json()} == {7, 20}

    def test_product_card_fields(self, client):
        card = client.get("/api/products/5").json()
        assert card["url"] == "/product/5"
        assert card["reviewsCount"] == 144

    def test_unknown_product(self, client):
        response = client.get("/api/products/999")
        assert response.status_code == 404
        assert response.json() == {"message": "Product not found"}
