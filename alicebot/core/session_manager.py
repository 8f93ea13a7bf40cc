import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Union

from .errors import SessionNotFoundError
from .models import ChatTurn, Role, Session

logger = logging.getLogger(__name__)

SystemContent = Union[str, Callable[[], str]]


def trim_history(turns: List[ChatTurn], max_turns: int) -> List[ChatTurn]:
    """
    Poda o histórico mantendo o turno system e os últimos max_turns pares
    user/assistant.

    Args:
        turns: Turnos da sessão (o primeiro é sempre system)
        max_turns: Número máximo de pares a manter

    Returns:
        Lista podada
    """
    max_messages = max_turns * 2
    body = turns[1:]
    if max_turns <= 0 or len(body) <= max_messages:
        return turns
    body = body[-max_messages:]
    # nunca começar o corpo com uma resposta órfã
    if body and body[0].role == Role.ASSISTANT:
        body = body[1:]
    return [turns[0]] + body


class _SessionLock:
    """Lock de uma sessão + quantos pedidos o seguram ou aguardam."""

    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class InMemorySessionManager:
    """
    Armazena sessões em memória, por processo.

    - Crescimento limitado: TTL por inatividade + LRU acima de max_sessions
    - Lock por sessão para serializar append -> upstream -> append
    - O lock do mapa nunca fica preso durante a chamada ao upstream
    - Sessões com pedido em voo não saem por TTL nem por LRU; o lock de uma
      sessão vive enquanto alguém o segura ou aguarda, mesmo após um reset
    """

    def __init__(
        self,
        max_stored_turns: int = 50,
        session_ttl_seconds: int = 86400,
        max_sessions: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()
        self._session_locks: Dict[str, _SessionLock] = {}
        self._lock = threading.RLock()
        self._max_stored_turns = max_stored_turns
        self._session_ttl_seconds = session_ttl_seconds
        self._max_sessions = max_sessions
        self._clock = clock

    def _is_expired(self, session: Session, now: float) -> bool:
        return self._session_ttl_seconds > 0 and now - session.last_access > self._session_ttl_seconds

    def _is_busy(self, session_id: str) -> bool:
        # entradas de lock só existem enquanto alguém segura ou aguarda
        return session_id in self._session_locks

    def _purge_expired(self, now: float) -> None:
        # OrderedDict está em ordem de acesso: os mais antigos vêm primeiro
        expired = []
        for session_id, session in self._sessions.items():
            if not self._is_expired(session, now):
                break
            if not self._is_busy(session_id):
                expired.append(session_id)
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Sessões expiradas removidas: count={len(expired)}")

    def _evict_if_full(self) -> None:
        while self._max_sessions > 0 and len(self._sessions) >= self._max_sessions:
            evicted_id = next((sid for sid in self._sessions if not self._is_busy(sid)), None)
            if evicted_id is None:
                logger.warning(
                    f"Limite de sessões atingido com todas em uso: "
                    f"active_sessions={len(self._sessions)}, max_sessions={self._max_sessions}"
                )
                return
            del self._sessions[evicted_id]
            logger.info(f"Sessão removida por LRU: session_id={evicted_id}")

    def _append_turn(self, session: Session, turn: ChatTurn) -> None:
        session.turns.append(turn)
        if self._max_stored_turns > 0 and len(session.turns) - 1 > self._max_stored_turns * 2:
            old_size = len(session.turns)
            session.turns = trim_history(session.turns, self._max_stored_turns)
            logger.debug(
                f"Histórico podado: session_id={session.session_id}, "
                f"de {old_size} para {len(session.turns)} turnos"
            )

    def _touch(self, session: Session, now: float) -> None:
        session.last_access = now
        self._sessions.move_to_end(session.session_id)

    def _get_live(self, session_id: str) -> Optional[Session]:
        now = self._clock()
        self._purge_expired(now)
        session = self._sessions.get(session_id)
        if session is not None:
            self._touch(session, now)
        return session

    def get_or_create(self, session_id: str, initial_system_content: SystemContent) -> Session:
        """
        Devolve a sessão existente sem alterá-la, ou cria uma nova com um
        único turno system.

        `initial_system_content` pode ser um callable: só é avaliado quando a
        sessão é nova, e é ignorado em chamadas seguintes.
        """
        with self._lock:
            session = self._get_live(session_id)
            if session is not None:
                logger.debug(f"Sessão recuperada: session_id={session_id}, turns={len(session.turns)}")
                return session

            content = initial_system_content() if callable(initial_system_content) else initial_system_content
            self._evict_if_full()
            session = Session(
                session_id=session_id,
                turns=[ChatTurn(role=Role.SYSTEM, content=content)],
                last_access=self._clock(),
            )
            self._sessions[session_id] = session
            logger.debug(f"Nova sessão criada: session_id={session_id}, active_sessions={len(self._sessions)}")
            return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._get_live(session_id)

    def exists(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    def append(self, session_id: str, turn: ChatTurn) -> None:
        """
        Acrescenta um turno à sessão existente (com poda automática).

        Raises:
            SessionNotFoundError: se a sessão não existir
        """
        with self._lock:
            session = self._get_live(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            self._append_turn(session, turn)

    def append_to(self, session: Session, turn: ChatTurn) -> Optional[List[ChatTurn]]:
        """
        Acrescenta o turno somente se `session` ainda for a sessão guardada
        sob o seu id (não foi resetada nem substituída).

        Returns:
            Cópia dos turnos após o append, ou None se a sessão não é mais a atual
        """
        with self._lock:
            if self._get_live(session.session_id) is not session:
                return None
            self._append_turn(session, turn)
            return list(session.turns)

    def replace_system(self, session_id: str, content: str) -> None:
        """
        Substitui o turno system (apenas no modo de refresh de contexto).
        """
        with self._lock:
            session = self._get_live(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.turns[0] = ChatTurn(role=Role.SYSTEM, content=content)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            existed = self._get_live(session_id) is not None
            self._sessions.pop(session_id, None)
        if existed:
            logger.debug(f"Sessão removida: session_id={session_id}")
        return existed

    def snapshot(self, session_id: str) -> List[ChatTurn]:
        """
        Cópia dos turnos da sessão; lista vazia se não existir.
        """
        with self._lock:
            session = self._get_live(session_id)
            return list(session.turns) if session is not None else []

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """
        Exclusão mútua por sessão: no máximo uma chamada ao upstream em voo
        por session_id.
        """
        with self._lock:
            entry = self._session_locks.get(session_id)
            if entry is None:
                entry = self._session_locks[session_id] = _SessionLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._session_locks[session_id]

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._sessions)
