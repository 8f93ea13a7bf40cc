"""
Taxonomia de erros do proxy.

Cada erro carrega o status HTTP que a borda deve devolver;
nenhum deles derruba estado de processo (sessões, chunks carregados).
"""
from typing import Optional


class ChatProxyError(Exception):
    """Erro base com mensagem voltada ao usuário e status HTTP."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ChatProxyError):
    """Campo ausente/inválido, prompt vazio após sanitização, sessão desconhecida no reset."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class SessionNotFoundError(ValidationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", field="sessionId")
        self.session_id = session_id


class UpstreamError(ChatProxyError):
    """
    Falha na chamada ao endpoint de chat-completions (status não-2xx ou resposta malformada).

    `status` é o status devolvido pelo upstream, quando houver.
    """

    status_code = 500
    GENERIC_MESSAGE = "Failed to get a response from the upstream model"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message or self.GENERIC_MESSAGE)
        self.status = status


class ConfigurationError(ChatProxyError):
    """Arquivo de conhecimento/personas ausente ou corrompido. Nunca fatal."""
