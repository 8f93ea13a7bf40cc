"""
Gerenciador de contexto que orquestra múltiplos provedores.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .provider import ContextProvider, ContextResult
from .providers import (
    PersonaContextProvider,
    KnowledgeContextProvider,
    DirectivesContextProvider,
    LexiconContextProvider,
)
from ..models import ChatTurn
from ...domain.personas import PersonaProfile

logger = logging.getLogger(__name__)


def default_providers() -> List[ContextProvider]:
    return [
        PersonaContextProvider(),
        KnowledgeContextProvider(),
        DirectivesContextProvider(),
        LexiconContextProvider(),
    ]


class ContextManager:
    """
    Orquestra os provedores de contexto e monta a mensagem system.

    Puro: não faz I/O e não guarda estado entre chamadas.
    """

    def __init__(self, providers: Optional[Iterable[ContextProvider]] = None):
        self._providers: Dict[str, ContextProvider] = {}
        for provider in providers if providers is not None else default_providers():
            provider_type = provider.context_type
            if provider_type in self._providers:
                logger.warning(
                    f"Provedor duplicado para tipo '{provider_type}'. "
                    f"Substituindo pelo último."
                )
            self._providers[provider_type] = provider

        logger.debug(
            f"ContextManager inicializado com {len(self._providers)} provedores: "
            f"{list(self._providers.keys())}"
        )

    def build_system_message(
        self,
        persona: PersonaProfile,
        context: Optional[str],
        extras: Optional[Sequence[str]] = None,
    ) -> str:
        """
        Monta a mensagem system combinando os blocos dos provedores.

        Args:
            persona: Perfil de persona (papel, diretrizes, léxico)
            context: Texto recuperado; vazio/None vira o marcador "no relevant information"
            extras: Léxico suplementar que substitui o da persona (opcional)

        Returns:
            Mensagem system completa
        """
        results: List[ContextResult] = []
        for provider in self._providers.values():
            result = provider.get_context(persona=persona, context=context, extras=extras)
            if result and result.content:
                results.append(result)

        results.sort(key=lambda r: r.priority)
        final_prompt = "".join(r.format_section() for r in results).strip()

        logger.debug(
            f"Mensagem system montada: persona={persona.name}, "
            f"num_sections={len(results)}, length={len(final_prompt)}"
        )
        return final_prompt


def build_messages(turns: Sequence[ChatTurn]) -> List[Dict[str, str]]:
    """
    Converte os turnos da sessão para o formato da API de chat-completions.
    """
    return [turn.to_api() for turn in turns]
