import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatTurn:
    """
    Uma entrada da conversa (system, user ou assistant).
    Imutável depois de criada; a ordem na sessão é a ordem cronológica.
    """
    role: Role
    content: str

    def to_api(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class Session:
    """
    Histórico de uma sessão: sempre começa com exatamente um turno system,
    seguido de turnos user/assistant alternados.
    """
    session_id: str
    turns: List[ChatTurn] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_access: float = field(default_factory=time.monotonic)

    @property
    def system_turn(self) -> ChatTurn:
        return self.turns[0]
