"""
Provedor das diretrizes de comportamento (numeradas) e da regra de idioma.
"""
from typing import Optional

from ..provider import ContextProvider, ContextResult
from ....domain.personas import PersonaProfile


class DirectivesContextProvider(ContextProvider):

    @property
    def context_type(self) -> str:
        return "directives"

    @property
    def priority(self) -> int:
        return 30

    def get_context(
        self,
        persona: PersonaProfile,
        context: Optional[str] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        lines = [f"    {i}.  {d}" for i, d in enumerate(persona.directives, start=1)]
        if persona.language_rule:
            lines.append(persona.language_rule)
        if not lines:
            return None
        return ContextResult(
            content="\n".join(lines),
            priority=self.priority,
            section_name="Here are your key directives:" if persona.directives else None,
            metadata={"type": "directives", "count": len(persona.directives)},
        )
