"""
Perfis de persona do bot.

Cada persona descreve papel, diretrizes de comportamento, regra de idioma
e um léxico opcional ("slang bank"). As personas são dados, não código:
podem vir de um arquivo JSON (PERSONAS_PATH) para ajustar comportamento
sem redeploy. Sem arquivo, valem os perfis embutidos abaixo.
"""
import json
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PERSONA = "medical_adviser"


@dataclass(frozen=True)
class PersonaProfile:
    """Descritor de persona usado pelo montador de prompt."""
    name: str
    role: str
    directives: Tuple[str, ...] = ()
    source_constraint: str = ""
    language_rule: str = ""
    lexicon: Tuple[str, ...] = ()
    lexicon_intro: str = "You have access to the following slang bank. Use these words naturally in replies:"


_SOURCE_CONSTRAINT = (
    "Your task is to answer the user's question ONLY using the provided text below.\n"
    "Do not use any of your pre-trained knowledge.\n"
    "If the answer is not in the text, state that you cannot find the information."
)

_MEDICAL_DIRECTIVES = (
    "Do not diagnose any medical conditions.",
    "Do not recommend specific treatments, medications, or dosages.",
    "Always provide a disclaimer at the end of your response stating that you are not a substitute "
    "for professional medical advice.",
    "Encourage the user to consult with a qualified healthcare professional for a proper diagnosis "
    "and treatment plan.",
    "Your responses should be based on established, factual medical information. If you cannot provide "
    "a factual answer, state that you do not have enough information and defer to a human professional.",
)

_ENGLISH_ONLY = "Always respond in English only, regardless of the language in the user input."


def get_builtin_personas() -> Dict[str, PersonaProfile]:
    """
    Retorna os perfis embutidos, indexados pelo nome.
    """
    return {
        "medical_adviser": PersonaProfile(
            name="medical_adviser",
            role=(
                "You are a professional medical adviser. Your purpose is to provide general, informative "
                "guidance and answer questions about common health topics. Your tone is supportive, clear, "
                "and reassuring.\n"
                "You have a kind, motherly bedside manner. Your communication is clear, reassuring, and "
                "empathetic. Use a clinical yet gentle tone. Always address the patient's concerns with "
                "patience and compassion."
            ),
            directives=_MEDICAL_DIRECTIVES,
            source_constraint=_SOURCE_CONSTRAINT,
            language_rule=_ENGLISH_ONLY,
        ),
        "health_information": PersonaProfile(
            name="health_information",
            role=(
                "You are a health information assistant. Your purpose is to explain common health topics "
                "in plain, neutral language. Keep answers short and factual."
            ),
            directives=_MEDICAL_DIRECTIVES,
            source_constraint=_SOURCE_CONSTRAINT,
            language_rule=_ENGLISH_ONLY,
        ),
    }


def _as_str_tuple(value, what: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"Campo '{what}' deve ser uma lista de strings")
    return tuple(value)


def persona_from_dict(name: str, data: dict) -> PersonaProfile:
    """
    Converte uma entrada do arquivo de personas em PersonaProfile.

    Campos ausentes herdam do perfil padrão (medical_adviser).
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Persona '{name}' deve ser um objeto")
    base = get_builtin_personas()[DEFAULT_PERSONA]
    role = data.get("role", base.role)
    if not isinstance(role, str) or not role.strip():
        raise ConfigurationError(f"Persona '{name}' sem 'role'")
    return PersonaProfile(
        name=name,
        role=role,
        directives=_as_str_tuple(data["directives"], "directives") if "directives" in data else base.directives,
        source_constraint=data.get("source_constraint", base.source_constraint),
        language_rule=data.get("language_rule", base.language_rule),
        lexicon=_as_str_tuple(data.get("lexicon"), "lexicon"),
        lexicon_intro=data.get("lexicon_intro", base.lexicon_intro),
    )


def load_personas(path: Optional[str]) -> Dict[str, PersonaProfile]:
    """
    Carrega personas do arquivo JSON ({"nome": {...}, ...}) e as mescla
    sobre os perfis embutidos. Falhas viram aviso e os embutidos são usados.
    """
    personas = get_builtin_personas()
    if not path:
        return personas

    try:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Arquivo de personas não encontrado: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Arquivo de personas inválido: {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Arquivo de personas deve conter um objeto: {path}")
        loaded = {name: persona_from_dict(name, entry) for name, entry in data.items()}
    except ConfigurationError as e:
        logger.warning(f"{e.message}. Usando personas embutidas.")
        return personas

    personas.update(loaded)
    logger.info(f"Personas carregadas: path={path}, personas={sorted(loaded)}")
    return personas


def load_lexicon(path: Optional[str]) -> Tuple[str, ...]:
    """
    Carrega o léxico opcional. Aceita JSON (lista ou {"lexicon": [...]})
    ou texto puro com uma entrada por linha.
    """
    if not path:
        return ()
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        logger.warning(f"Léxico não carregado: path={path}, error={e}")
        return ()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        entries: List[str] = [line.strip() for line in raw.splitlines() if line.strip()]
        logger.info(f"Léxico carregado (texto): path={path}, entries={len(entries)}")
        return tuple(entries)

    if isinstance(data, dict):
        data = data.get("lexicon")
    if not isinstance(data, list):
        logger.warning(f"Formato inesperado no léxico: path={path}")
        return ()
    entries = [e for e in data if isinstance(e, str) and e.strip()]
    logger.info(f"Léxico carregado: path={path}, entries={len(entries)}")
    return tuple(entries)


def resolve_persona(
    personas: Dict[str, PersonaProfile],
    name: str,
    lexicon: Tuple[str, ...] = (),
) -> PersonaProfile:
    """
    Seleciona a persona configurada; nome desconhecido cai no padrão com aviso.
    Um léxico externo substitui o léxico embutido da persona.
    """
    persona = personas.get(name)
    if persona is None:
        logger.warning(f"Persona desconhecida '{name}', usando '{DEFAULT_PERSONA}'")
        persona = personas[DEFAULT_PERSONA]
    if lexicon:
        persona = replace(persona, lexicon=lexicon)
    return persona
