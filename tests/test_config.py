from clerk.config import load_settings


class TestLoadSettings:
    def test_defaults(self, monkeypatch):
        for name in ("GEMINI_API_KEY", "GEMINI_MODEL", "GEMINI_MODEL_MATCH", "CATALOG_PATH", "MATCH_LIMIT"):
            monkeypatch.delenv(name, raising=False)
        settings = load_settings()
        assert settings.chat_configured is False
        assert settings.gemini_model_match == settings.gemini_model
        assert settings.catalog_path.name == "products.json"
        assert (settings.prompts_dir / "semantic_match.txt").exists()
        assert settings.match_limit == 4

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        monkeypatch.setenv("GEMINI_MODEL", "gemini-main")
        monkeypatch.setenv("GEMINI_MODEL_MATCH", "gemini-small")
        monkeypatch.setenv("CATALOG_PATH", str(tmp_path / "catalog.json"))
        monkeypatch.setenv("LLM_TIMEOUT_SEC", "7.5")
        settings = load_settings()
        assert settings.chat_configured is True
        assert settings.gemini_model_match == "gemini-small"
        assert settings.catalog_path == tmp_path / "catalog.json"
        assert settings.llm_timeout_sec == 7.5
