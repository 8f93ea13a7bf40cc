"""
Provedor do bloco de texto recuperado da base de conhecimento.
"""
from typing import Optional

from ..provider import ContextProvider, ContextResult
from ....domain.knowledge import NO_RELEVANT_INFORMATION
from ....domain.personas import PersonaProfile


class KnowledgeContextProvider(ContextProvider):

    @property
    def context_type(self) -> str:
        return "knowledge"

    @property
    def priority(self) -> int:
        return 20

    def get_context(
        self,
        persona: PersonaProfile,
        context: Optional[str] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        content = context if context and context.strip() else NO_RELEVANT_INFORMATION
        return ContextResult(
            content=content,
            priority=self.priority,
            section_name="Provided text:",
            metadata={"type": "knowledge", "has_matches": content != NO_RELEVANT_INFORMATION},
        )
