from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import google.generativeai as genai

try:  # Prefer typed enums when available
    from google.generativeai import types as genai_types

    DEFAULT_SAFETY_SETTINGS = [
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_NONE,
        },
    ]
except Exception:  # pragma: no cover - fallback for older SDKs
    DEFAULT_SAFETY_SETTINGS = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
    ]

from .config import ClerkNotConfiguredError, Settings

logger = logging.getLogger("clerk.gemini")


@dataclass
class ToolCall:
    """A structured tool invocation returned by the model."""
    call_id: str
    name: str
    arguments: Any = None


@dataclass
class ModelReply:
    """Either free text, a list of tool calls, or both."""
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


class GeminiClient:
    """Thin wrapper around Gemini SDK with model caching, safety settings, and timeouts."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures SDK global API key and caches model instances.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ClerkNotConfiguredError if the API key is missing.
        If Removed: The tool-calling pass, semantic match, and free-form replies cannot run.
        Testing Notes: Validate missing key raises ClerkNotConfiguredError.
        """
        # Configure API key and seed default model cache.
        self._settings = settings
        if not settings.gemini_api_key:
            raise ClerkNotConfiguredError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        self._timeout = settings.llm_timeout_sec

    def generate_text(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        json_mode: bool = False,
    ) -> str:
        """Purpose: Generate a single text response from a string prompt.
        Inputs/Outputs: Input is prompt string and optional model/config; returns text.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses genai.GenerativeModel.generate_content.
        Failure Modes: Raises ValueError if model name is missing; SDK and timeout errors
            propagate to the caller.
        If Removed: Delegated semantic matching cannot call the LLM.
        Testing Notes: json_mode=True should return a parseable JSON object.
        """
        # Resolve the cached model and request plain text or JSON.
        generation_config: Dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"
        response = self._get_model(model).generate_content(
            prompt,
            generation_config=generation_config,
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            request_options={"timeout": self._timeout},
        )
        text: Optional[str] = getattr(response, "text", None)
        return (text or "").strip()

    def generate_content(
        self,
        contents: list,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.5,
        max_output_tokens: int = 512,
    ) -> str:
        """Purpose: Generate a free-form reply from structured chat contents.
        Inputs/Outputs: Input is list of content entries and optional system prompt; returns text.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses _get_model and _reply_from_response.
        Failure Modes: SDK and timeout errors propagate to the caller.
        If Removed: The Clerk cannot answer turns that produced no cards or forced text.
        Testing Notes: Pass a two-entry transcript and check non-empty text.
        """
        # System guidance goes into the model constructor; contents stay as-is.
        response = self._get_model(model, system_instruction).generate_content(
            contents,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            },
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            request_options={"timeout": self._timeout},
        )
        return _reply_from_response(response).text

    def generate_with_tools(
        self,
        contents: list,
        tools: List[Dict[str, Any]],
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.4,
    ) -> ModelReply:
        """Purpose: Run one tool-calling pass and return text plus tool invocations.
        Inputs/Outputs: Inputs are chat contents, function declarations, and the system
            prompt; output is a ModelReply.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses the SDK's function-calling support and _reply_from_response.
        Failure Modes: SDK and timeout errors propagate to the caller.
        If Removed: The Clerk loses its LLM-directed action path.
        Testing Notes: A "find me a gift" prompt should return a search_products call.
        """
        # Let the model decide between answering and calling a declared tool.
        response = self._get_model(model, system_instruction).generate_content(
            contents,
            generation_config={"temperature": temperature},
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            tools=[{"function_declarations": tools}],
            tool_config={"function_calling_config": {"mode": "AUTO"}},
            request_options={"timeout": self._timeout},
        )
        return _reply_from_response(response)

    def _get_model(self, model: Optional[str] = None, system_instruction: Optional[str] = None):
        model_name = _normalize_model_name(model) if model else self._default_model
        if not model_name:
            raise ValueError("Gemini model name is required")
        if system_instruction:
            # Instances carrying a system prompt are per-turn and not cached.
            return genai.GenerativeModel(model_name, system_instruction=system_instruction)
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        return self._models[model_name]


def _reply_from_response(response: Any) -> ModelReply:
    """Purpose: Split an SDK response into text and function calls.
    Inputs/Outputs: Input is a GenerateContentResponse; output is a ModelReply.
    Side Effects / State: None.
    Dependencies: Reads candidates[0].content.parts; avoids response.text, which raises
        when the reply holds a function call.
    Failure Modes: Missing candidates yield an empty ModelReply.
    If Removed: Tool calls cannot be extracted from model replies.
    Testing Notes: Feed a stub with one text part and one function_call part.
    """
    # Walk the parts of the first candidate.
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ModelReply()
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    texts: List[str] = []
    calls: List[ToolCall] = []
    for index, part in enumerate(parts):
        function_call = getattr(part, "function_call", None)
        if function_call is not None and getattr(function_call, "name", ""):
            calls.append(
                ToolCall(
                    call_id=f"call_{index}",
                    name=function_call.name,
                    arguments=_function_call_args(function_call),
                )
            )
            continue
        text = getattr(part, "text", "")
        if text:
            texts.append(str(text))
    return ModelReply(text="\n".join(texts).strip(), tool_calls=calls)


def _function_call_args(function_call: Any) -> Any:
    # proto-plus messages expose to_dict on their type; fall back to the raw mapping.
    try:
        return type(function_call).to_dict(function_call).get("args", {})
    except Exception:
        args = getattr(function_call, "args", None)
        return dict(args) if args is not None else {}


def _normalize_model_name(name: Optional[str]) -> str:
    """Purpose: Normalize model names by stripping prefix and whitespace.
    Inputs/Outputs: Input is a model name string; output is normalized name.
    Side Effects / State: None.
    Dependencies: None; used by GeminiClient.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Model caching and selection may use invalid names and fail.
    Testing Notes: Ensure "models/foo" becomes "foo" and whitespace is trimmed.
    """
    # Strip "models/" prefix and whitespace.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned


def text_content(role: str, text: str) -> Dict[str, Any]:
    """Build one chat content entry in the SDK's dict form."""
    return {"role": role, "parts": [{"text": text}]}
