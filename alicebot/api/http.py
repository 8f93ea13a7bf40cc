import logging
import time
from typing import List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .rate_limit import RateLimiter, RateLimitMiddleware
from ..config import AppConfig
from ..core.engine import ChatbotEngine
from ..core.errors import ChatProxyError, UpstreamError

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    prompt: Optional[str] = None
    model: Optional[str] = None
    sessionId: Optional[str] = None


class ResetRequest(BaseModel):
    sessionId: Optional[str] = None


class CompletionMessage(BaseModel):
    content: str


class CompletionChoice(BaseModel):
    message: CompletionMessage


class ChatResponse(BaseModel):
    choices: List[CompletionChoice]


class ResetResponse(BaseModel):
    message: str


class ModelsResponse(BaseModel):
    models: List[str]
    default: str


class MessageHistoryItem(BaseModel):
    role: str
    content: str


class HistoryResponse(BaseModel):
    sessionId: str
    createdAt: str
    turns: int
    history: List[MessageHistoryItem]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware que gera request_id único para cada requisição
    e adiciona aos logs e headers de resposta.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = uuid4().hex[:16]
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request processado: request_id={request_id}, "
            f"method={request.method}, path={request.url.path}, "
            f"status={response.status_code}, duration_ms={duration_ms:.2f}"
        )
        return response


def _describe_validation_error(exc: RequestValidationError) -> str:
    """
    Transforma o erro do pydantic numa mensagem curta que nomeia o campo.
    """
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        if loc:
            return f"Invalid field: {'.'.join(loc)}"
    return "Invalid request body"


def register_error_handlers(app: FastAPI) -> None:
    """
    Todas as respostas de erro saem no formato {"error": "..."}.
    """

    @app.exception_handler(ChatProxyError)
    async def chat_proxy_error_handler(request: Request, exc: ChatProxyError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _describe_validation_error(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


def create_app(config: Optional[AppConfig] = None, engine: Optional[ChatbotEngine] = None) -> FastAPI:
    """
    Cria a aplicação FastAPI e injeta dependências principais (config + engine).
    """
    config = config or AppConfig.load_from_env()
    engine = engine or ChatbotEngine(config=config)

    app = FastAPI(
        title="ALICE Chat Proxy",
        version="0.1.0",
        description="Proxy de chat com histórico por sessão e contexto da base de conhecimento.",
    )

    if config.rate_limit_requests > 0:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=RateLimiter(config.rate_limit_requests, config.rate_limit_window_seconds),
        )
    # adicionado por último = mais externo, então o 429 também leva X-Request-ID
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    def health_check():
        """
        Endpoint de health check para monitoramento e Docker healthchecks.
        """
        return {
            "status": "healthy",
            "knowledge_chunks": len(engine.knowledge),
            "active_sessions": len(engine.sessions),
            "persona": engine.persona.name,
        }

    @app.get("/api/models", response_model=ModelsResponse)
    def list_models() -> ModelsResponse:
        return ModelsResponse(models=list(config.allowed_models), default=config.default_model)

    @app.post("/api/chat", response_model=ChatResponse)
    def chat_endpoint(payload: ChatRequest, request: Request):
        request_id = getattr(request.state, "request_id", "unknown")
        logger.info(
            f"Recebida requisição /api/chat: request_id={request_id}, "
            f"session_id={payload.sessionId}, model={payload.model}, "
            f"prompt_length={len(payload.prompt or '')}"
        )

        start_time = time.time()
        try:
            result = engine.handle_chat(
                prompt=payload.prompt,
                model=payload.model,
                session_id=payload.sessionId,
                request_id=request_id,
            )
        except UpstreamError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Erro do upstream: request_id={request_id}, session_id={payload.sessionId}, "
                f"status={e.status}, duration_ms={duration_ms:.2f}, error={e.message}"
            )
            raise
        except ChatProxyError:
            raise
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Erro ao processar mensagem: request_id={request_id}, "
                f"session_id={payload.sessionId}, duration_ms={duration_ms:.2f}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            raise HTTPException(status_code=500, detail="Internal server error")

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Resposta gerada: request_id={request_id}, session_id={payload.sessionId}, "
            f"duration_ms={duration_ms:.2f}"
        )
        return result

    @app.post("/api/reset", response_model=ResetResponse)
    def reset_endpoint(payload: ResetRequest, request: Request):
        request_id = getattr(request.state, "request_id", "unknown")
        logger.info(f"Recebida requisição /api/reset: request_id={request_id}, session_id={payload.sessionId}")
        return engine.reset(payload.sessionId)

    @app.get("/api/history/{session_id}", response_model=HistoryResponse)
    def get_history(session_id: str, request: Request):
        """
        Histórico da sessão (system + turnos). Sessão desconhecida -> 400.
        """
        request_id = getattr(request.state, "request_id", "unknown")
        result = engine.get_conversation_history(session_id)
        logger.info(
            f"Histórico recuperado: request_id={request_id}, "
            f"session_id={session_id}, turns={result['turns']}"
        )
        return result

    return app
