from __future__ import annotations

import hashlib
import random
from typing import Sequence, TypeVar

from rules.state import slugify

T = TypeVar("T")

BIOME_KEYWORDS: dict[str, set[str]] = {
    "crypt": {"crypt", "tomb", "ossuary"},
    "sewers": {"sewer", "sewers", "drain", "cistern"},
    "fortress": {"courtyard", "gate", "citadel", "keep", "hall"},
    "catacombs": {"throne", "catacomb", "catacombs"},
}

DEFAULT_BIOME = "default"


def location_key(location: str | None) -> str:
    return slugify(location or "") or "unknown"


def biome_key(location: str | None) -> str:
    words = set(location_key(location).split("_"))
    for biome, keywords in BIOME_KEYWORDS.items():
        if words & keywords:
            return biome
    return DEFAULT_BIOME


def stable_seed(*parts: object) -> int:
    digest = hashlib.sha256("|".join(str(part) for part in parts).encode("utf-8")).hexdigest()
    return int(digest[:12], 16)


def pick_variant(options: Sequence[T], *, seed: int) -> T:
    if not options:
        raise ValueError("No variants to choose from.")
    rng = random.Random(seed)
    return rng.choice(list(options))


def scene_art_key(location: str, threat: str | None = None) -> tuple[str, str]:
    """Registry key and art key for a location, optionally with its active threat."""
    if threat:
        return f"{location}|{threat}", f"scene:{location_key(location)}:{slugify(threat)}"
    return location, f"scene:{location_key(location)}"
