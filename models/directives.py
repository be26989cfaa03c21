"""
Directives — the validation gate between model replies and the platform.

Every reply passes through one of these models before any side effect runs.
The model is asked to answer with Portuguese keys (valido, narracao, ...);
those are the aliases below. If a required field for the reply's shape is
missing, validation fails and the whole reply is discarded. Nothing is
ever applied from a half-valid reply.
"""

from enum import IntEnum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError


def _missing(field: str, detail: str):
    return PydanticCustomError(
        "missing_field",
        "missing required field '{field}' ({detail})",
        {"field": field, "detail": detail},
    )


class NarrationDirective(BaseModel):
    """Reply to an action narration request."""

    valid: bool = Field(alias="valido")
    reason: Optional[str] = Field(default=None, alias="motivo")
    narration: Optional[str] = Field(default=None, alias="narracao")
    context_update: Optional[str] = Field(default=None, alias="contexto")

    @model_validator(mode="after")
    def check_shape(self):
        if self.valid:
            if not self.narration:
                raise _missing("narracao", "valid narration")
            if not self.context_update:
                raise _missing("contexto", "valid narration")
        elif not self.reason:
            raise _missing("motivo", "invalid narration")
        return self

    model_config = {"populate_by_name": True, "extra": "ignore"}


class EventDirective(BaseModel):
    """Reply to an event contextualization request (plain text, not JSON)."""

    irrelevant: bool = False
    context_update: Optional[str] = None


class DiplomacyKind(IntEnum):
    NOT_ACTIONABLE = 0
    NPC_RESPONSE = 1
    WAR_DECLARED = 2
    WAR_UPDATED = 3
    NOTABLE = 4


# Attribute names (not aliases) each kind needs, in the order they are checked
REQUIRED_FIELDS: Dict[DiplomacyKind, Tuple[str, ...]] = {
    DiplomacyKind.NOT_ACTIONABLE: ("reason",),
    DiplomacyKind.NPC_RESPONSE: ("country", "npc_reply", "context_update"),
    DiplomacyKind.WAR_DECLARED: ("country", "narration", "context_update", "war_title", "war_synopsis"),
    DiplomacyKind.WAR_UPDATED: ("country", "narration", "context_update", "war_id", "war_synopsis"),
    DiplomacyKind.NOTABLE: ("narration", "context_update"),
}


class DiplomacyDirective(BaseModel):
    """Reply to a diplomacy request. `kind` decides which fields are mandatory."""

    kind: DiplomacyKind = Field(alias="tipo")
    reason: Optional[str] = Field(default=None, alias="motivo")
    country: Optional[str] = Field(default=None, alias="pais")
    npc_reply: Optional[str] = Field(default=None, alias="resposta")
    context_update: Optional[str] = Field(default=None, alias="contexto")
    narration: Optional[str] = Field(default=None, alias="narracao")
    war_title: Optional[str] = Field(default=None, alias="guerra")
    war_synopsis: Optional[str] = Field(default=None, alias="sinopse")
    war_id: Optional[str] = Field(default=None, alias="id")

    @field_validator("war_id", mode="before")
    @classmethod
    def coerce_war_id(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @model_validator(mode="after")
    def check_required(self):
        for name in REQUIRED_FIELDS[self.kind]:
            if not getattr(self, name):
                alias = type(self).model_fields[name].alias or name
                raise _missing(alias, f"kind {int(self.kind)}")
        return self

    model_config = {"populate_by_name": True, "extra": "ignore"}
