"""
Validação e sanitização da entrada do /api/chat e /api/reset.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_PROMPT_CHARS = 2000

_FIELD_LABELS = {
    "prompt": "Prompt",
    "model": "model",
    "sessionId": "sessionId",
}


@dataclass(frozen=True)
class ChatInput:
    prompt: str
    model: str
    session_id: str


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value)


def _join_fields(fields: List[str]) -> str:
    labels = [_FIELD_LABELS.get(f, f) for f in fields]
    if len(labels) <= 2:
        return " and ".join(labels)
    return ", ".join(labels[:-1]) + ", and " + labels[-1]


def require_fields(values: dict, fields: Iterable[str]) -> None:
    """
    Levanta ValidationError nomeando todos os campos obrigatórios ausentes.

    Ex: "Prompt and sessionId are required"
    """
    missing = [f for f in fields if _is_blank(values.get(f))]
    if not missing:
        return
    verb = "is" if len(missing) == 1 else "are"
    raise ValidationError(f"{_join_fields(missing)} {verb} required", field=missing[0])


def sanitize_prompt(prompt: str, max_chars: int = DEFAULT_MAX_PROMPT_CHARS) -> str:
    """
    Remove espaços das pontas e corta em max_chars.

    Idempotente: aplicar duas vezes dá o mesmo resultado.
    """
    return prompt.strip()[:max_chars]


def validate_chat_input(
    prompt: Optional[str],
    model: Optional[str],
    session_id: Optional[str],
    allowed_models: Iterable[str],
    max_prompt_chars: int = DEFAULT_MAX_PROMPT_CHARS,
) -> ChatInput:
    """
    Valida os campos do /api/chat e devolve a entrada já sanitizada.

    Nenhum efeito colateral: falhas aqui nunca tocam o Session Store.
    """
    require_fields(
        {"prompt": prompt, "model": model, "sessionId": session_id},
        ("prompt", "model", "sessionId"),
    )
    if model not in tuple(allowed_models):
        logger.info(f"Modelo rejeitado: model={model}")
        raise ValidationError("Invalid model selected", field="model")

    sanitized = sanitize_prompt(prompt, max_prompt_chars)
    if not sanitized:
        raise ValidationError("Prompt is empty after sanitization", field="prompt")

    return ChatInput(prompt=sanitized, model=model, session_id=session_id)
