"""
Base de conhecimento estática do bot.

Carrega uma lista fixa de chunks de texto de um arquivo JSON local na
inicialização e expõe uma busca por palavra-chave (contenção de substring,
sem ranking). Arquivo ausente ou corrompido nunca é fatal: o sistema
continua funcionando com zero chunks.
"""
import json
import logging
from typing import List, Optional, Sequence

from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

NO_RELEVANT_INFORMATION = "No relevant information found in the knowledge base."
DEFAULT_SEARCH_LIMIT = 3


def _parse_chunks(data, path: str) -> List[str]:
    """
    Aceita os dois formatos históricos do arquivo:
    - lista pura de strings: ["...", "..."]
    - objeto com lista: {"chunks": ["...", "..."]}
    """
    if isinstance(data, dict):
        data = data.get("chunks")
    if not isinstance(data, list):
        raise ConfigurationError(f"Formato inesperado no arquivo de conhecimento: {path}")

    chunks: List[str] = []
    for i, item in enumerate(data):
        if not isinstance(item, str):
            logger.warning(f"Chunk ignorado (não é string): path={path}, index={i}")
            continue
        chunks.append(item)
    return chunks


def load_chunks(path: str) -> List[str]:
    """
    Carrega os chunks do arquivo. Em qualquer falha, loga aviso e devolve [].

    Args:
        path: Caminho do arquivo JSON

    Returns:
        Lista de chunks na ordem do arquivo
    """
    try:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Arquivo de conhecimento não encontrado: {path}") from e
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Arquivo de conhecimento inválido: {path}: {e}") from e
        chunks = _parse_chunks(data, path)
    except ConfigurationError as e:
        logger.warning(f"{e.message}. Continuando com base de conhecimento vazia.")
        return []

    logger.info(f"Base de conhecimento carregada: path={path}, chunks={len(chunks)}")
    return chunks


def search_chunks(query: str, chunks: Sequence[str], limit: int = DEFAULT_SEARCH_LIMIT) -> List[str]:
    """
    Retorna os primeiros `limit` chunks que contêm `query` (case-insensitive),
    preservando a ordem de armazenamento.
    """
    if limit <= 0:
        return []
    needle = query.lower()
    results: List[str] = []
    for chunk in chunks:
        if needle in chunk.lower():
            results.append(chunk)
            if len(results) >= limit:
                break
    return results


def format_context(chunks: Sequence[str]) -> str:
    """
    Junta os chunks com linha em branco; lista vazia vira o marcador
    "no relevant information".
    """
    if not chunks:
        return NO_RELEVANT_INFORMATION
    return "\n\n".join(chunks)


class KnowledgeStore:
    """
    Conjunto somente-leitura de chunks carregados na inicialização.
    Não precisa de sincronização.
    """

    def __init__(self, chunks: Optional[Sequence[str]] = None, default_limit: int = DEFAULT_SEARCH_LIMIT) -> None:
        self._chunks = tuple(chunks or ())
        self._default_limit = default_limit

    @classmethod
    def from_file(cls, path: str, default_limit: int = DEFAULT_SEARCH_LIMIT) -> "KnowledgeStore":
        return cls(load_chunks(path), default_limit=default_limit)

    @property
    def chunks(self) -> Sequence[str]:
        return self._chunks

    def search(self, query: str, limit: Optional[int] = None) -> List[str]:
        return search_chunks(query, self._chunks, self._default_limit if limit is None else limit)

    def __len__(self) -> int:
        return len(self._chunks)
