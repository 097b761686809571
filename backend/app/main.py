import logging
import os
from functools import lru_cache
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from db import SessionLocal, check_db_connection
from llm.client import OllamaClient
from rules.character import new_game_state
from rules.narration import CannedNarrator, Narrator
from rules.reference import ReferenceCatalog
from rules.saves import (
    SaveIncompatibleError,
    hydrate_state,
    load_saved_state,
    serialize_state,
    store_state,
)
from rules.turn import TurnError, execute_turn

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_catalog() -> ReferenceCatalog:
    return ReferenceCatalog.load(os.getenv("REFERENCE_DATA_DIR") or None)


def get_narrator() -> Narrator | None:
    choice = os.getenv("NARRATOR", "canned").lower()
    if choice == "ollama":
        return OllamaClient()
    if choice == "none":
        return None
    return CannedNarrator.from_catalog(get_catalog())


app = FastAPI(
    title="ironkeep-engine API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


class GameCreate(BaseModel):
    player_id: str = Field(min_length=1, max_length=120)
    archetype: str | None = None
    seed: int | None = Field(default=None, gt=0)
    force_new: bool = False


class TurnRequest(BaseModel):
    player_id: str = Field(min_length=1, max_length=120)
    action: str


class GameImportRequest(BaseModel):
    player_id: str = Field(min_length=1, max_length=120)
    state: dict[str, Any]


def _game_payload(player_id: str, state) -> dict:
    return {"player_id": player_id, "state": serialize_state(state)}


def _load_or_404(db, player_id: str):
    try:
        state = load_saved_state(db, player_id, get_catalog())
    except SaveIncompatibleError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if state is None:
        raise HTTPException(status_code=404, detail="Saved game not found")
    return state


@app.get("/health")
def health() -> dict:
    try:
        check_db_connection()
    except Exception as exc:
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


@app.post("/games")
def create_game(payload: GameCreate) -> dict:
    catalog = get_catalog()
    with SessionLocal() as db:
        if not payload.force_new:
            try:
                existing = load_saved_state(db, payload.player_id, catalog)
            except SaveIncompatibleError:
                logger.info("Replacing incompatible save for %s", payload.player_id)
                existing = None
            if existing is not None:
                return _game_payload(payload.player_id, existing)
        state = new_game_state(catalog, payload.archetype, seed=payload.seed)
        store_state(db, payload.player_id, state)
        db.commit()
        return _game_payload(payload.player_id, state)


@app.get("/games/{player_id}")
def get_game(player_id: str) -> dict:
    with SessionLocal() as db:
        return _game_payload(player_id, _load_or_404(db, player_id))


@app.post("/resolve_turn")
def resolve_turn(payload: TurnRequest) -> dict:
    try:
        result = execute_turn(
            payload.player_id,
            payload.action,
            catalog=get_catalog(),
            narrator=get_narrator(),
        )
    except TurnError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SaveIncompatibleError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {
        "new_state": serialize_state(result.new_state),
        "log_entry": result.log_entry.model_dump(by_alias=True, mode="json"),
        "facts": result.facts,
        "rolls": result.rolls,
        "narration_context": result.narration_context.model_dump(by_alias=True, mode="json"),
    }


@app.post("/games/{player_id}/export")
def export_game(player_id: str) -> dict:
    with SessionLocal() as db:
        return _game_payload(player_id, _load_or_404(db, player_id))


@app.post("/games/import")
def import_game(payload: GameImportRequest) -> dict:
    try:
        state = hydrate_state(payload.state, get_catalog())
    except SaveIncompatibleError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    with SessionLocal() as db:
        store_state(db, payload.player_id, state)
        db.commit()
    return _game_payload(payload.player_id, state)
