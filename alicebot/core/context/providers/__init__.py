"""
Provedores de contexto específicos.
"""
from .persona import PersonaContextProvider
from .knowledge import KnowledgeContextProvider
from .directives import DirectivesContextProvider
from .lexicon import LexiconContextProvider

__all__ = [
    "PersonaContextProvider",
    "KnowledgeContextProvider",
    "DirectivesContextProvider",
    "LexiconContextProvider",
]
