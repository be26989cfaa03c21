"""
PromptBuilder — Category-specific prompts from templates and world state.

Templates come from the environment (PROMPT_NARRATION, PROMPT_EVENT,
PROMPT_DIPLOMACY, PROMPT_QA) and use ${placeholder} markers. Every
placeholder is checked against the recognized set when the template is
loaded; an unknown one raises PromptTemplateError at start-up instead of
failing (or worse, doing something) mid-narration. Substitution is one
textual pass: values are never re-scanned for placeholders.
"""

import os
import re
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from models.narration import Category, NarrationRequest
from models.world_state import Player, War
from tools.errors import PromptTemplateError

logger = logging.getLogger("PromptBuilder")

PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")

RECOGNIZED_PLACEHOLDERS = frozenset({
    "player",
    "guild_name",
    "date",
    "roster",
    "wars",
    "context",
    "action",
    "extra_prompt",
    "chat_history",
})

# ---------------------------------------------------------------------------
# Built-in templates (used when the environment does not provide one)
# ---------------------------------------------------------------------------

DEFAULT_NARRATION_TEMPLATE = """Você é o narrador de um roleplay geopolítico no servidor ${guild_name}.
A data atual do roleplay é ${date}.

Países e jogadores:
${roster}

Guerras em andamento:
${wars}

Contexto recente do mundo:
${context}

${extra_prompt}

O jogador ${player} enviou a seguinte ação:
${action}

Avalie se a ação é válida e narre suas consequências de forma realista.
Se houver mudanças numéricas (população, economia, exército), liste-as ao final em um bloco ```diff.
Responda SOMENTE com um JSON neste formato:
{"valido": true/false, "motivo": "se inválida, o motivo", "narracao": "texto da narração", "contexto": "resumo curto do que mudou no mundo"}"""

DEFAULT_EVENT_TEMPLATE = """Você mantém o registro de contexto de um roleplay geopolítico no servidor ${guild_name}.
A data atual do roleplay é ${date}.

Países e jogadores:
${roster}

Guerras em andamento:
${wars}

Contexto atual:
${context}

A staff publicou o seguinte evento:
${action}

Resuma em poucas frases o que muda no mundo por causa desse evento.
Se o evento não alterar nada relevante, responda exatamente: IRRELEVANTE!!!"""

DEFAULT_DIPLOMACY_TEMPLATE = """Você analisa a diplomacia de um roleplay geopolítico no servidor ${guild_name}.
A data atual do roleplay é ${date}.

Países e jogadores:
${roster}

Guerras em andamento (com ids):
${wars}

Contexto recente:
${context}

O jogador ${player} enviou a seguinte mensagem diplomática:
${action}

Classifique a mensagem e responda SOMENTE com um JSON, onde "tipo" é:
0 = não é diplomacia relevante {"tipo": 0, "motivo": "..."}
1 = mensagem a um país NPC {"tipo": 1, "pais": "...", "resposta": "resposta do NPC", "contexto": "..."}
2 = declaração de guerra {"tipo": 2, "pais": "...", "narracao": "...", "contexto": "...", "guerra": "nome da guerra", "sinopse": "..."}
3 = mudança em guerra existente {"tipo": 3, "pais": "...", "narracao": "...", "contexto": "...", "id": "id da guerra", "sinopse": "nova sinopse"}
4 = diplomacia importante sem guerra {"tipo": 4, "narracao": "...", "contexto": "..."}"""

DEFAULT_QA_TEMPLATE = """Você é o assistente do roleplay geopolítico do servidor ${guild_name}.
A data atual do roleplay é ${date}.

Países e jogadores:
${roster}

Guerras em andamento:
${wars}

Contexto do mundo:
${context}

Conversa recente no canal:
${chat_history}

${player} perguntou:
${action}

Responda de forma curta e útil, sem inventar fatos que contradigam o contexto."""

_ENV_TEMPLATES = {
    Category.ACTION: ("PROMPT_NARRATION", DEFAULT_NARRATION_TEMPLATE),
    Category.EVENT: ("PROMPT_EVENT", DEFAULT_EVENT_TEMPLATE),
    Category.DIPLOMACY: ("PROMPT_DIPLOMACY", DEFAULT_DIPLOMACY_TEMPLATE),
    Category.MENTION_QA: ("PROMPT_QA", DEFAULT_QA_TEMPLATE),
}


class PromptTemplate:
    """A template whose placeholders were validated on construction."""

    def __init__(self, name: str, text: str):
        self.name = name
        self.text = text
        self.placeholders = self._validate(name, text)

    @staticmethod
    def _validate(name: str, text: str) -> List[str]:
        found = []
        for match in PLACEHOLDER.finditer(text):
            key = match.group(1).strip()
            if key not in RECOGNIZED_PLACEHOLDERS:
                raise PromptTemplateError(name, match.group(1))
            found.append(key)
        return found

    def render(self, fields: Mapping[str, str]) -> str:
        """Substitute placeholders. Missing fields render as empty strings."""
        return PLACEHOLDER.sub(
            lambda m: str(fields.get(m.group(1).strip(), "") or ""),
            self.text,
        )


def format_roster(players: Iterable[Player]) -> str:
    lines = []
    for p in players:
        owner = p.display_name or f"<@{p.user_id}>"
        lines.append(f"- {p.country} (jogador: {owner})")
    return "\n".join(lines) if lines else "Nenhum país registrado."


def format_wars(wars: Iterable[War]) -> str:
    lines = []
    for w in wars:
        line = f"- {w.title} (id: {w.thread_id})"
        if w.synopsis:
            line += f": {w.synopsis}"
        lines.append(line)
    return "\n".join(lines) if lines else "Nenhuma guerra em andamento."


class PromptBuilder:
    """Holds one validated template per prompting category."""

    def __init__(self, templates: Dict[Category, PromptTemplate]):
        missing = [c.value for c in _ENV_TEMPLATES if c not in templates]
        if missing:
            raise ValueError(f"Missing prompt templates: {', '.join(missing)}")
        self.templates = dict(templates)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PromptBuilder":
        """Load templates from the environment, falling back to the built-in ones."""
        environ = os.environ if environ is None else environ
        templates = {}
        for category, (var, default) in _ENV_TEMPLATES.items():
            text = environ.get(var)
            if text:
                logger.info(f"Using {var} from environment")
            templates[category] = PromptTemplate(var, text or default)
        return cls(templates)

    @staticmethod
    def fields_for(request: NarrationRequest) -> Dict[str, str]:
        return {
            "player": request.player,
            "guild_name": request.guild_name,
            "date": request.current_date,
            "roster": request.roster,
            "wars": request.wars,
            "context": request.context,
            "action": request.action_text,
            "extra_prompt": request.extra_prompt,
            "chat_history": request.chat_history,
        }

    def build(self, request: NarrationRequest) -> Tuple[str, List[str]]:
        """Return (prompt_text, image_urls) for the request's category."""
        template = self.templates.get(request.category)
        if template is None:
            raise ValueError(f"No prompt template for category {request.category.value}")
        prompt = template.render(self.fields_for(request))
        return prompt, list(request.image_urls)
