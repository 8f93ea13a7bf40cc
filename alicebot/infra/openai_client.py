import logging
import random
import time
from typing import Any, Dict, List, Optional

from openai import OpenAI, APIConnectionError, APIError, APIStatusError, APITimeoutError

from ..config import AppConfig
from ..core.errors import UpstreamError

logger = logging.getLogger(__name__)

MALFORMED_RESPONSE_MESSAGE = "Malformed response from upstream: missing choices[0].message.content"


def _extract_error_message(body: Any) -> Optional[str]:
    """
    Extrai a mensagem de erro do corpo devolvido pelo upstream.

    Aceita tanto {"error": {"message": ...}} quanto {"message": ...}.
    """
    if isinstance(body, dict):
        inner = body.get("error")
        if isinstance(inner, dict) and isinstance(inner.get("message"), str):
            return inner["message"]
        if isinstance(inner, str) and inner:
            return inner
        if isinstance(body.get("message"), str):
            return body["message"]
    if isinstance(body, str) and body.strip():
        return body
    return None


class LanguageModelClient:
    """
    Encaminha a sequência de mensagens ao endpoint de chat-completions
    (OpenRouter ou qualquer API compatível com OpenAI) e extrai a resposta.

    Timeout limitado (30s por padrão). Retry com backoff exponencial + jitter
    existe, mas vem desligado (UPSTREAM_MAX_RETRIES=0).
    """

    def __init__(self, config: AppConfig, client: Optional[OpenAI] = None) -> None:
        self._config = config
        timeout_seconds = config.upstream_timeout_ms / 1000.0
        self._client = client or OpenAI(
            api_key=config.upstream_api_key,
            base_url=config.upstream_base_url,
            timeout=timeout_seconds,
            max_retries=0,  # retry é controlado aqui
            default_headers={"X-Title": config.upstream_app_title},
        )
        self._max_retries = max(0, config.upstream_max_retries)
        self._retry_base_delay_ms = config.upstream_retry_base_delay_ms

    def _should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Retry apenas para 429, 5xx e timeout/conexão, e só enquanto houver
        tentativas sobrando.
        """
        if attempt >= self._max_retries:
            return False

        if isinstance(error, (APITimeoutError, TimeoutError, APIConnectionError)):
            return True

        if isinstance(error, APIStatusError):
            status_code = error.status_code
            return status_code == 429 or 500 <= status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """
        Delay = base_delay * (2 ^ attempt) + jitter (0 a 20% do delay).
        """
        base_delay_seconds = self._retry_base_delay_ms / 1000.0
        exponential_delay = base_delay_seconds * (2 ** attempt)
        jitter = random.uniform(0, exponential_delay * 0.2)
        return exponential_delay + jitter

    @staticmethod
    def _to_upstream_error(error: Exception) -> UpstreamError:
        if isinstance(error, UpstreamError):
            return error
        if isinstance(error, APIStatusError):
            message = _extract_error_message(error.body) or error.message
            return UpstreamError(message, status=error.status_code)
        if isinstance(error, APIError):
            return UpstreamError(error.message or None)
        return UpstreamError(str(error) or None)

    @staticmethod
    def _extract_reply(response: Any) -> str:
        """
        Extrai choices[0].message.content; qualquer forma diferente é erro.
        """
        choices = getattr(response, "choices", None)
        if not choices:
            # OpenRouter às vezes devolve 200 com {"error": {...}} no corpo
            extra = getattr(response, "model_extra", None) or {}
            message = _extract_error_message(extra)
            raise UpstreamError(message or MALFORMED_RESPONSE_MESSAGE)
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            raise UpstreamError(MALFORMED_RESPONSE_MESSAGE)
        return content

    def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        request_id: Optional[str] = None,
    ) -> str:
        """
        Envia `model` e a sequência completa de mensagens ao upstream e
        devolve o conteúdo da primeira escolha.

        Args:
            model: Identificador do modelo (já validado contra a allow-list)
            messages: system + turnos anteriores + novo turno do usuário
            request_id: ID da requisição para logs (opcional)

        Raises:
            UpstreamError: status não-2xx, erro de rede ou resposta malformada
        """
        request_id_str = f"request_id={request_id}, " if request_id else ""
        logger.debug(
            f"Chamando upstream: {request_id_str}model={model}, num_messages={len(messages)}"
        )

        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries + 1):
            try:
                start_time = time.time()
                response = self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                )
                duration_ms = (time.time() - start_time) * 1000
                reply_text = self._extract_reply(response)

                logger.info(
                    f"Chamada ao upstream bem-sucedida: {request_id_str}model={model}, "
                    f"attempt={attempt + 1}, reply_length={len(reply_text)}, duration_ms={duration_ms:.2f}"
                )
                return reply_text

            except UpstreamError as e:
                logger.error(f"Resposta malformada do upstream: {request_id_str}model={model}, error={e.message}")
                raise

            except Exception as e:
                last_error = e

                if not self._should_retry(e, attempt):
                    upstream_error = self._to_upstream_error(e)
                    logger.error(
                        f"Erro ao chamar upstream: {request_id_str}model={model}, "
                        f"attempt={attempt + 1}, status={upstream_error.status}, "
                        f"error={type(e).__name__}: {upstream_error.message}"
                    )
                    raise upstream_error from e

                delay_seconds = self._calculate_retry_delay(attempt)
                logger.warning(
                    f"Erro transitório ao chamar upstream (tentativa {attempt + 1}/{self._max_retries + 1}): "
                    f"{request_id_str}model={model}, error={type(e).__name__}: {e}, "
                    f"retry_em={delay_seconds:.2f}s"
                )
                time.sleep(delay_seconds)

        # só chega aqui se o loop terminar sem retorno nem raise
        raise self._to_upstream_error(last_error or RuntimeError("Erro desconhecido ao chamar upstream"))
