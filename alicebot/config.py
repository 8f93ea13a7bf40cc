from dataclasses import dataclass
import json
import os
import logging
from typing import Optional, Tuple
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_MODELS: Tuple[str, ...] = (
    "openai/gpt-4o-mini",
    "openai/gpt-4o",
    "anthropic/claude-3.5-sonnet",
    "google/gemini-flash-1.5",
    "meta-llama/llama-3.1-70b-instruct",
    "mistralai/mistral-7b-instruct",
)


def _env_int(name: str, default: int) -> int:
    """
    Lê um inteiro do ambiente; valores inválidos caem no padrão com aviso.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Valor inválido para {name}='{raw}', usando padrão {default}")
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


def parse_model_list(raw: str) -> Tuple[str, ...]:
    """
    Converte "a, b,c" em ("a", "b", "c"), ignorando itens vazios e duplicados.
    """
    models = []
    for item in raw.split(","):
        item = item.strip()
        if item and item not in models:
            models.append(item)
    return tuple(models)


def load_models_file(path: str) -> Optional[Tuple[str, ...]]:
    """
    Carrega a allow-list de modelos de um arquivo JSON.

    Aceita uma lista pura de strings ou um objeto {"models": [...]}.
    Retorna None se o arquivo não existir ou estiver malformado.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Arquivo de modelos não encontrado: path={path}")
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Arquivo de modelos inválido: path={path}, error={e}")
        return None

    if isinstance(data, dict):
        data = data.get("models")
    if not isinstance(data, list):
        logger.warning(f"Formato inesperado no arquivo de modelos: path={path}")
        return None
    models = tuple(m.strip() for m in data if isinstance(m, str) and m.strip())
    return models or None


@dataclass(frozen=True)
class AppConfig:
    """
    Configurações principais do proxy.

    Centraliza parâmetros críticos (upstream, sessões, limites)
    para facilitar revisão, testes e mudanças sem redeploy de código.
    """
    upstream_api_key: str
    upstream_base_url: str = "https://openrouter.ai/api/v1"
    upstream_app_title: str = "ALICE BOT"
    allowed_models: Tuple[str, ...] = DEFAULT_ALLOWED_MODELS
    knowledge_path: str = "knowledge.json"
    personas_path: Optional[str] = None
    persona: str = "medical_adviser"
    lexicon_path: Optional[str] = None
    max_prompt_chars: int = 2000
    knowledge_result_limit: int = 3
    session_max_stored_turns: int = 50  # pares user/assistant guardados por sessão
    session_ttl_seconds: int = 86400  # sessões ociosas além disso são descartadas
    session_max_sessions: int = 10000  # acima disso, LRU
    refresh_context_each_turn: bool = False
    upstream_timeout_ms: int = 30000
    upstream_max_retries: int = 0
    upstream_retry_base_delay_ms: int = 400
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 900
    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def default_model(self) -> str:
        return self.allowed_models[0] if self.allowed_models else ""

    def is_model_allowed(self, model: str) -> bool:
        return model in self.allowed_models

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Carrega configuração a partir de variáveis de ambiente.
        Primeiro tenta carregar do arquivo .env, depois do ambiente do sistema.
        Levanta erro explícito se a chave do upstream faltar.
        """
        load_dotenv()

        api_key = os.getenv("OPENROUTER_API_KEY")
        if not api_key:
            raise RuntimeError("Variável de ambiente OPENROUTER_API_KEY não definida.")

        # Allow-list: ALLOWED_MODELS tem precedência sobre ALLOWED_MODELS_PATH
        allowed_models = DEFAULT_ALLOWED_MODELS
        models_env = os.getenv("ALLOWED_MODELS", "")
        models_path = os.getenv("ALLOWED_MODELS_PATH", "")
        if models_env.strip():
            allowed_models = parse_model_list(models_env) or DEFAULT_ALLOWED_MODELS
        elif models_path.strip():
            allowed_models = load_models_file(models_path) or DEFAULT_ALLOWED_MODELS
        logger.info(f"Modelos permitidos: {list(allowed_models)}")

        return cls(
            upstream_api_key=api_key,
            upstream_base_url=os.getenv("UPSTREAM_BASE_URL", "https://openrouter.ai/api/v1"),
            upstream_app_title=os.getenv("UPSTREAM_APP_TITLE", "ALICE BOT"),
            allowed_models=allowed_models,
            knowledge_path=os.getenv("KNOWLEDGE_PATH", "knowledge.json"),
            personas_path=os.getenv("PERSONAS_PATH") or None,
            persona=os.getenv("PERSONA", "medical_adviser"),
            lexicon_path=os.getenv("LEXICON_PATH") or None,
            max_prompt_chars=_env_int("MAX_PROMPT_CHARS", 2000),
            knowledge_result_limit=_env_int("KNOWLEDGE_RESULT_LIMIT", 3),
            session_max_stored_turns=_env_int("SESSION_MAX_STORED_TURNS", 50),
            session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 86400),
            session_max_sessions=_env_int("SESSION_MAX_SESSIONS", 10000),
            refresh_context_each_turn=_env_bool("REFRESH_CONTEXT_EACH_TURN"),
            upstream_timeout_ms=_env_int("UPSTREAM_TIMEOUT_MS", 30000),
            upstream_max_retries=_env_int("UPSTREAM_MAX_RETRIES", 0),
            upstream_retry_base_delay_ms=_env_int("UPSTREAM_RETRY_BASE_DELAY_MS", 400),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", 100),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 900),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000),
        )
