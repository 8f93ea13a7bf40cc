import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .context import ContextManager, build_messages
from .errors import SessionNotFoundError, ValidationError
from .models import ChatTurn, Role
from .session_manager import InMemorySessionManager
from .validation import require_fields, validate_chat_input
from ..config import AppConfig
from ..domain.knowledge import KnowledgeStore, format_context
from ..domain.personas import PersonaProfile, load_lexicon, load_personas, resolve_persona
from ..infra.openai_client import LanguageModelClient

logger = logging.getLogger(__name__)


class ChatbotEngine:
    """
    Núcleo lógico do proxy.

    - Valida e sanitiza a entrada
    - Busca contexto na base de conhecimento
    - Monta a mensagem system (só na criação da sessão, por padrão)
    - Encaminha o histórico ao upstream e guarda a resposta
    """

    def __init__(
        self,
        config: AppConfig,
        knowledge: Optional[KnowledgeStore] = None,
        sessions: Optional[InMemorySessionManager] = None,
        lm_client: Optional[LanguageModelClient] = None,
        persona: Optional[PersonaProfile] = None,
    ) -> None:
        self._config = config
        self._knowledge = knowledge if knowledge is not None else KnowledgeStore.from_file(
            config.knowledge_path, default_limit=config.knowledge_result_limit
        )
        self._sessions = sessions if sessions is not None else InMemorySessionManager(
            max_stored_turns=config.session_max_stored_turns,
            session_ttl_seconds=config.session_ttl_seconds,
            max_sessions=config.session_max_sessions,
        )
        self._lm_client = lm_client or LanguageModelClient(config)
        self._persona = persona or resolve_persona(
            load_personas(config.personas_path),
            config.persona,
            lexicon=load_lexicon(config.lexicon_path),
        )
        self._context_manager = ContextManager()

        logger.info(
            f"ChatbotEngine inicializado: persona={self._persona.name}, "
            f"knowledge_chunks={len(self._knowledge)}, models={len(config.allowed_models)}, "
            f"refresh_context_each_turn={config.refresh_context_each_turn}"
        )

    @property
    def sessions(self) -> InMemorySessionManager:
        return self._sessions

    @property
    def knowledge(self) -> KnowledgeStore:
        return self._knowledge

    @property
    def persona(self) -> PersonaProfile:
        return self._persona

    def build_system_message(self, prompt: str) -> str:
        """
        Busca os chunks relevantes para o prompt e monta a mensagem system.
        """
        chunks = self._knowledge.search(prompt, limit=self._config.knowledge_result_limit)
        return self._context_manager.build_system_message(self._persona, format_context(chunks))

    def handle_chat(
        self,
        prompt: Optional[str],
        model: Optional[str],
        session_id: Optional[str],
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Processa uma mensagem do /api/chat.

        Ordem: valida -> sanitiza -> garante sessão -> append(user) ->
        upstream -> append(assistant). Se o upstream falhar, o turno do
        usuário permanece no histórico. Se a sessão for resetada durante a
        chamada, a resposta é devolvida mas não entra na sessão nova.

        Returns:
            Envelope no formato de completions: {"choices": [{"message": {"content": ...}}]}

        Raises:
            ValidationError: entrada inválida (nada é alterado no Session Store)
            UpstreamError: falha no upstream
        """
        chat_input = validate_chat_input(
            prompt,
            model,
            session_id,
            allowed_models=self._config.allowed_models,
            max_prompt_chars=self._config.max_prompt_chars,
        )
        session_id = chat_input.session_id

        user_turn = ChatTurn(role=Role.USER, content=chat_input.prompt)
        with self._sessions.lock(session_id):
            # um reset concorrente pode remover a sessão entre os passos: recomeça
            history = None
            while history is None:
                session = self._sessions.get_or_create(
                    session_id,
                    lambda: self.build_system_message(chat_input.prompt),
                )
                if self._config.refresh_context_each_turn and len(session.turns) > 1:
                    try:
                        self._sessions.replace_system(session_id, self.build_system_message(chat_input.prompt))
                    except SessionNotFoundError:
                        continue
                history = self._sessions.append_to(session, user_turn)
            messages = build_messages(history)

            logger.debug(
                f"Encaminhando ao upstream: request_id={request_id or 'N/A'}, "
                f"session_id={session_id}, num_messages={len(messages)}"
            )
            reply_text = self._lm_client.complete(
                model=chat_input.model,
                messages=messages,
                request_id=request_id,
            )

            stored = self._sessions.append_to(session, ChatTurn(role=Role.ASSISTANT, content=reply_text))
            if stored is None:
                logger.warning(
                    f"Sessão resetada durante a chamada ao upstream, resposta não guardada: "
                    f"request_id={request_id or 'N/A'}, session_id={session_id}"
                )

        logger.info(
            f"Resposta obtida do upstream: request_id={request_id or 'N/A'}, "
            f"session_id={session_id}, model={chat_input.model}, reply_length={len(reply_text)}"
        )
        logger.debug(f"Resposta (preview): session_id={session_id}, reply_preview={reply_text[:100]}...")

        return {"choices": [{"message": {"content": reply_text}}]}

    def reset(self, session_id: Optional[str]) -> Dict[str, str]:
        """
        Remove a sessão. sessionId ausente ou desconhecido é erro de validação.
        """
        require_fields({"sessionId": session_id}, ("sessionId",))
        if not self._sessions.delete(session_id):
            raise ValidationError("Invalid or unknown sessionId", field="sessionId")
        logger.info(f"Sessão resetada: session_id={session_id}")
        return {"message": "Session reset"}

    def get_conversation_history(self, session_id: str) -> Dict[str, Any]:
        """
        Recupera o histórico de uma sessão sem processar mensagem.

        Raises:
            SessionNotFoundError: sessão inexistente
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        turns = list(session.turns)
        return {
            "sessionId": session_id,
            "createdAt": datetime.fromtimestamp(session.created_at, tz=timezone.utc).isoformat(),
            "turns": len(turns),
            "history": build_messages(turns),
        }
