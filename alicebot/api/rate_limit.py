"""
Limite de requisições por cliente (janela deslizante, em memória).
"""
import logging
import threading
import time
from typing import Callable, Dict, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class RateLimiter:
    """
    Conta hits por chave dentro de uma janela deslizante de `window_seconds`.

    Chaves sem hits dentro da janela são varridas no máximo uma vez por
    janela, então o mapa só guarda clientes ativos.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _sweep(self, window_start: float) -> None:
        stale = [
            key for key, timestamps in self._hits.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug(f"Rate limit: chaves expiradas removidas: count={len(stale)}")

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Registra um hit para `key`.

        Returns:
            (permitido, requisições restantes na janela)
        """
        now = self._clock()
        window_start = now - self.window_seconds
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(window_start)
                self._last_sweep = now
            timestamps = [ts for ts in self._hits.get(key, []) if ts > window_start]
            if len(timestamps) >= self.limit:
                self._hits[key] = timestamps
                return False, 0
            timestamps.append(now)
            self._hits[key] = timestamps
            return True, self.limit - len(timestamps)

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejeita com 429 antes de chegar ao handler quando o cliente excede o
    limite. Só se aplica a caminhos com o prefixo configurado.
    """

    def __init__(self, app, limiter: RateLimiter, path_prefix: str = "/api/") -> None:
        super().__init__(app)
        self._limiter = limiter
        self._path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self._path_prefix):
            return await call_next(request)

        client_key = request.client.host if request.client else "unknown"
        allowed, remaining = self._limiter.hit(client_key)
        if not allowed:
            logger.warning(f"Rate limit excedido: client={client_key}, path={request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"error": RATE_LIMIT_MESSAGE},
                headers={"Retry-After": str(self._limiter.window_seconds)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._limiter.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
