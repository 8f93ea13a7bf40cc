import json

import pytest

from alicebot.config import DEFAULT_ALLOWED_MODELS, AppConfig, load_models_file, parse_model_list


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    monkeypatch.setattr("alicebot.config.load_dotenv", lambda: None)
    for name in ("ALLOWED_MODELS", "ALLOWED_MODELS_PATH", "PORT", "REFRESH_CONTEXT_EACH_TURN", "UPSTREAM_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)


def test_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        AppConfig.load_from_env()


def test_defaults(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "k")
    config = AppConfig.load_from_env()
    assert config.allowed_models == DEFAULT_ALLOWED_MODELS
    assert config.max_prompt_chars == 2000
    assert config.upstream_timeout_ms == 30000
    assert config.upstream_max_retries == 0
    assert config.refresh_context_each_turn is False
    assert config.port == 3000


def test_allowed_models_from_env(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "k")
    monkeypatch.setenv("ALLOWED_MODELS", "a/one, b/two,,a/one")
    config = AppConfig.load_from_env()
    assert config.allowed_models == ("a/one", "b/two")
    assert config.default_model == "a/one"
    assert config.is_model_allowed("b/two")
    assert not config.is_model_allowed("c/three")


def test_allowed_models_from_file(monkeypatch, tmp_path):
    path = tmp_path / "models.json"
    path.write_text(json.dumps({"models": ["x/model"]}), encoding="utf-8")
    monkeypatch.setenv("OPENROUTER_API_KEY", "k")
    monkeypatch.setenv("ALLOWED_MODELS_PATH", str(path))
    assert AppConfig.load_from_env().allowed_models == ("x/model",)


def test_invalid_int_falls_back(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "k")
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.setenv("REFRESH_CONTEXT_EACH_TURN", "yes")
    config = AppConfig.load_from_env()
    assert config.port == 3000
    assert config.refresh_context_each_turn is True


def test_model_helpers(tmp_path):
    assert parse_model_list(" a ,b") == ("a", "b")
    assert load_models_file(str(tmp_path / "missing.json")) is None
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    assert load_models_file(str(bad)) is None
    bare = tmp_path / "bare.json"
    bare.write_text(json.dumps(["m1", "m2"]), encoding="utf-8")
    assert load_models_file(str(bare)) == ("m1", "m2")
