from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class ClerkNotConfiguredError(ValueError):
    """Raised when the chat capability is missing a required credential."""


@dataclass(frozen=True)
class Settings:
    """Configuration container for models, catalog, and runtime limits."""
    gemini_api_key: str
    gemini_model: str
    gemini_model_match: str
    catalog_path: Path
    prompts_dir: Path
    llm_timeout_sec: float
    profile_ttl_sec: int
    max_profiles: int
    match_limit: int

    @property
    def chat_configured(self) -> bool:
        return bool(self.gemini_api_key)


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: App cannot configure the model, catalog, or limits and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve catalog and prompt paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        catalog_file = Path(catalog_path)
    else:
        catalog_file = (BASE_DIR / "data" / "products.json").resolve()

    prompts_dir = (BASE_DIR / "prompts").resolve()
    model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=model,
        gemini_model_match=os.getenv("GEMINI_MODEL_MATCH") or model,
        catalog_path=catalog_file,
        prompts_dir=prompts_dir,
        llm_timeout_sec=float(os.getenv("LLM_TIMEOUT_SEC", "20")),
        profile_ttl_sec=int(os.getenv("PROFILE_TTL_SEC", str(24 * 60 * 60))),
        max_profiles=int(os.getenv("MAX_PROFILES", "5000")),
        match_limit=int(os.getenv("MATCH_LIMIT", "4")),
    )
