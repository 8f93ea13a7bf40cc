"""
Módulo de montagem da mensagem system.

Combina persona, texto recuperado, diretrizes e léxico de forma modular.
"""

from .provider import ContextProvider, ContextResult
from .manager import ContextManager, build_messages, default_providers
from .providers import (
    PersonaContextProvider,
    KnowledgeContextProvider,
    DirectivesContextProvider,
    LexiconContextProvider,
)

__all__ = [
    "ContextProvider",
    "ContextResult",
    "ContextManager",
    "build_messages",
    "default_providers",
    "PersonaContextProvider",
    "KnowledgeContextProvider",
    "DirectivesContextProvider",
    "LexiconContextProvider",
]
