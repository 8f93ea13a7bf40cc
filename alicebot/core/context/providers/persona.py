"""
Provedor do bloco de persona (papel + restrição de fonte de informação).
"""
from typing import Optional

from ..provider import ContextProvider, ContextResult
from ....domain.personas import PersonaProfile


class PersonaContextProvider(ContextProvider):
    """
    Abre a mensagem system: quem o bot é e de onde ele pode tirar respostas.
    """

    @property
    def context_type(self) -> str:
        return "persona"

    @property
    def priority(self) -> int:
        return 1  # Sempre primeiro

    def get_context(
        self,
        persona: PersonaProfile,
        context: Optional[str] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        parts = [persona.role.strip()]
        if persona.source_constraint:
            parts.append(persona.source_constraint.strip())
        return ContextResult(
            content="\n\n".join(parts),
            priority=self.priority,
            metadata={"type": "persona", "name": persona.name},
        )
