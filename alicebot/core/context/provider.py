"""
Classe base para provedores de contexto.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ...domain.personas import PersonaProfile


@dataclass(frozen=True)
class ContextResult:
    """
    Resultado de um provedor de contexto.

    Attributes:
        content: Texto a ser adicionado à mensagem system
        priority: Menor número = aparece antes
        section_name: Cabeçalho da seção (ex: "Provided text:")
        metadata: Metadados adicionais (opcional)
    """
    content: str
    priority: int = 100
    section_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def format_section(self) -> str:
        """
        Formata o contexto como uma seção do prompt.
        """
        if not self.content or not self.content.strip():
            return ""

        if self.section_name:
            return f"\n\n{self.section_name}\n{self.content}"
        return f"\n\n{self.content}"


class ContextProvider(ABC):
    """
    Classe base abstrata para provedores de contexto.

    Cada provedor gera uma parte da mensagem system. Provedores são puros:
    sem I/O e sem estado mutável, então as mesmas entradas geram sempre
    o mesmo texto.
    """

    @abstractmethod
    def get_context(
        self,
        persona: PersonaProfile,
        context: Optional[str] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        """
        Gera o bloco de contexto.

        Args:
            persona: Perfil de persona da sessão
            context: Texto recuperado (ou o marcador "no relevant information")
            **kwargs: Argumentos adicionais específicos do provedor

        Returns:
            ContextResult, ou None se não aplicável
        """

    @property
    @abstractmethod
    def context_type(self) -> str:
        """
        Identificador do bloco (ex: "persona", "knowledge", "lexicon").
        """

    @property
    def priority(self) -> int:
        return 100
