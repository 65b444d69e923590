"""
Unit tests for splitting Gemini replies into text and tool calls.
"""

from types import SimpleNamespace

from clerk.gemini_client import ModelReply, ToolCall, _normalize_model_name, _reply_from_response, text_content


def make_response(*parts):
    content = SimpleNamespace(parts=list(parts))
    return SimpleNamespace(candidates=[SimpleNamespace(content=content)])


class TestReplyFromResponse:
    def test_text_and_function_call(self):
        response = make_response(
            SimpleNamespace(text="Checking that for you.", function_call=None),
            SimpleNamespace(function_call=SimpleNamespace(name="add_to_cart", args={"productId": 5, "quantity": 2})),
        )
        reply = _reply_from_response(response)
        assert reply.text == "Checking that for you."
        assert reply.tool_calls == [ToolCall("call_1", "add_to_cart", {"productId": 5, "quantity": 2})]

    def test_no_candidates(self):
        assert _reply_from_response(SimpleNamespace(candidates=[])) == ModelReply()

    def test_unnamed_function_call_is_ignored(self):
        response = make_response(SimpleNamespace(text="", function_call=SimpleNamespace(name="", args={})))
        assert _reply_from_response(response).tool_calls == []


class TestHelpers:
    def test_model_name_prefix_is_stripped(self):
        assert _normalize_model_name(" models/gemini-2.5-flash ") == "gemini-2.5-flash"
        assert _normalize_model_name(None) == ""

    def test_text_content_shape(self):
        assert text_content("user", "hi") == {"role": "user", "parts": [{"text": "hi"}]}
