from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rules.schemas import NarrationMode


class NarrationRequest(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        strict=True,
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    mode: NarrationMode
    location_key: str
    biome_key: str
    enemy_name: str | None = None
    took_damage: bool = False
    dealt_damage: bool = False
    item_names: tuple[str, ...] = ()
    facts: tuple[str, ...] = ()
    turn: int = Field(default=0, ge=0)
