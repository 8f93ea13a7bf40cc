"""
Provedor do léxico suplementar opcional ("slang bank").
"""
from typing import Optional, Sequence

from ..provider import ContextProvider, ContextResult
from ....domain.personas import PersonaProfile


class LexiconContextProvider(ContextProvider):
    """
    Bloco opcional: só aparece se a persona (ou a chamada, via `extras`)
    trouxer entradas de léxico.
    """

    @property
    def context_type(self) -> str:
        return "lexicon"

    @property
    def priority(self) -> int:
        return 90

    def get_context(
        self,
        persona: PersonaProfile,
        context: Optional[str] = None,
        extras: Optional[Sequence[str]] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        entries = list(extras) if extras else list(persona.lexicon)
        if not entries:
            return None
        return ContextResult(
            content="\n".join(entries),
            priority=self.priority,
            section_name=persona.lexicon_intro,
            metadata={"type": "lexicon", "entries": len(entries)},
        )
