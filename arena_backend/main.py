"""
FastAPI server for the psychology arena.
Connects the battle UI to the combat engine.
"""

# Config loads .env BEFORE anything else reads env vars
from arena_backend import config

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from arena_backend.ai.feedback import get_coaching_feedback
from arena_backend.errors import ArenaError, BattleNotFoundError, InvalidTransitionError, UnknownAbilityError
from arena_backend.game_logic.battle_manager import BattleManager
from arena_backend.realtime.websocket import ConnectionManager

config.configure_logging()
logger = logging.getLogger("arena.api")

# ════════════════════════════════════════════════════════════
# STARTUP: Show dialogue configuration
# ════════════════════════════════════════════════════════════
print("=" * 60)
print("PSYCH ARENA - Server Starting")
print("=" * 60)
print(f"LLM_MODE: {config.LLM_MODE}")
print(f"ANTHROPIC_API_KEY: {'SET' if config.ANTHROPIC_API_KEY else 'NOT SET'}")
print(f"ROUND_CAP: {config.ROUND_CAP}")
print("=" * 60)

app = FastAPI(title="Psych Arena API")
battles = BattleManager()
connections = ConnectionManager()
battles.add_listener(connections.broadcast_sync)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    BattleNotFoundError: 404,
    InvalidTransitionError: 409,
    UnknownAbilityError: 422,
}


@app.exception_handler(ArenaError)
async def arena_error_handler(request: Request, exc: ArenaError):
    status = ERROR_STATUS.get(type(exc), 400)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status, exc)
    body = {"success": False, "message": str(exc)}
    if isinstance(exc, UnknownAbilityError):
        body["suggestions"] = exc.suggestions
    return JSONResponse(status_code=status, content=body)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"success": False, "message": str(exc)})


class CreateBattleRequest(BaseModel):
    player: Dict[str, Any]
    opponent: Dict[str, Any]
    seed: Optional[int] = None
    round_cap: Optional[int] = None


class StrategyRequest(BaseModel):
    fighter_id: str
    category: str  # 'attack', 'defense' or 'special'
    ability: str


class CoachingRequest(BaseModel):
    fighter_id: str
    focus: str  # e.g. 'mental_health_support'
    intensity: str = "gentle"  # 'gentle', 'firm' or 'intense'
    message: str = ""
    trigger: Optional[str] = None


class RewardsRequest(BaseModel):
    current_skills: Dict[str, Dict[str, Dict[str, Any]]] = {}
    membership_multiplier: float = 1.0


def _state(battle_id: str) -> Dict[str, Any]:
    return battles.get_session(battle_id).snapshot()


@app.get("/test")
async def test_connection():
    """Health check."""
    return {
        "status": "ok",
        "message": "Backend is running",
        "llm_mode": config.LLM_MODE,
        "active_battles": len(battles),
    }


@app.post("/battles")
async def create_battle(request: CreateBattleRequest):
    session = battles.create_battle(request.player, request.opponent,
                                    seed=request.seed, round_cap=request.round_cap)
    return {"success": True, "battle_id": session.battle_id, "state": session.snapshot()}


@app.get("/battles/{battle_id}")
async def get_battle(battle_id: str):
    return _state(battle_id)


@app.post("/battles/{battle_id}/start")
async def start_battle(battle_id: str):
    session = await battles.start_battle(battle_id)
    return {"success": True, "state": session.snapshot(), "announcements": list(session.announcements)}


@app.post("/battles/{battle_id}/huddle")
async def finish_huddle(battle_id: str):
    """Close the huddle and open strategy selection for round 1."""
    session = battles.finish_huddle(battle_id)
    return {"success": True, "state": session.snapshot()}


@app.post("/battles/{battle_id}/strategy")
async def select_strategy(battle_id: str, request: StrategyRequest):
    accepted = battles.select_strategy(battle_id, request.fighter_id, request.category, request.ability)
    return {
        "success": True,
        "fighter_id": request.fighter_id,
        "category": request.category,
        "ability": accepted,
        "auto_corrected": accepted.lower() != request.ability.lower(),
    }


@app.post("/battles/{battle_id}/proceed")
async def proceed(battle_id: str):
    """Resolve the current round with the selected strategies."""
    records = await battles.proceed(battle_id)
    entry = battles.get(battle_id)
    session = entry.session
    round_number = records[0].round if records else None
    return {
        "success": True,
        "records": [r.to_dict() for r in records],
        "commentary": [c for c in entry.commentary if c["round"] == round_number],
        "state": session.snapshot(),
        "outcome": session.outcome.to_dict() if session.outcome else None,
    }


@app.post("/battles/{battle_id}/reset")
async def reset_battle(battle_id: str):
    session = battles.reset(battle_id)
    return {"success": True, "state": session.snapshot()}


@app.post("/battles/{battle_id}/coaching")
async def coach(battle_id: str, request: CoachingRequest):
    result = await battles.coach(battle_id, request.fighter_id, request.focus, request.intensity,
                                 message=request.message, trigger=request.trigger)
    fighter = battles.get_session(battle_id).get_fighter(request.fighter_id)
    return {
        "success": True,
        "session": result.to_dict(),
        "feedback": get_coaching_feedback(result.effectiveness, fighter.name),
        "psych": fighter.psych.to_dict(),
    }


@app.get("/battles/{battle_id}/rewards")
async def get_rewards(battle_id: str):
    return {"success": True, "rewards": battles.calculate_rewards(battle_id)}


@app.post("/battles/{battle_id}/rewards")
async def calculate_rewards(battle_id: str, request: RewardsRequest):
    """Rewards with the caller's current skill levels and membership multiplier."""
    rewards = battles.calculate_rewards(battle_id, request.current_skills, request.membership_multiplier)
    return {"success": True, "rewards": rewards}


@app.get("/battles/{battle_id}/log")
async def get_battle_log(battle_id: str):
    """Full round log, adherence alerts and coaching history."""
    entry = battles.get(battle_id)
    session = entry.session
    return {
        "round_log": [r.to_dict() for r in session.round_log],
        "adherence_events": [e.to_dict() for e in session.adherence_events],
        "coaching_sessions": [s.to_dict() for s in entry.coaching.log],
        "commentary": list(entry.commentary),
        "announcements": list(session.announcements),
    }


# ════════════════════════════════════════════════════════════
# REALTIME
# ════════════════════════════════════════════════════════════

async def _handle_socket_event(battle_id: str, ws: WebSocket, event: str, data: Dict[str, Any]) -> str:
    """
    Handle one client event.

    Returns:
        The battle this socket plays from now on. find_match and
        join_battle switch it; everything else keeps it.

    Raises:
        ArenaError: Engine rejected the event
        ValueError: Malformed event data
    """
    if event == "find_match":
        player, opponent = data.get("player") or {}, data.get("opponent") or {}
        if not isinstance(player, dict) or not isinstance(opponent, dict):
            raise ValueError("find_match needs player and opponent roster objects")
        session = battles.create_battle(player, opponent, seed=data.get("seed"))
        connections.join(session.battle_id, ws)
        await connections.send(ws, "match_found", {"battle_id": session.battle_id, "state": session.snapshot()})
        return session.battle_id
    if event == "join_battle":
        target = str(data.get("battle_id", battle_id))
        state = _state(target)
        connections.join(target, ws)
        await connections.send(ws, "battle_state", state)
        return target
    if event == "select_strategy":
        accepted = battles.select_strategy(battle_id, str(data.get("fighter_id", "")),
                                           str(data.get("category", "")), str(data.get("ability", "")))
        await connections.send(ws, "strategy_selected", {
            "battle_id": battle_id,
            "fighter_id": data.get("fighter_id"),
            "ability": accepted,
        })
    elif event == "chat_message":
        await connections.broadcast(battle_id, "chat_message", {
            "sender": data.get("sender", "coach"),
            "message": data.get("message", ""),
        })
    else:
        await connections.send(ws, "error", {"message": f"Unknown event: {event}"})
    return battle_id


@app.websocket("/ws/{battle_id}")
async def battle_socket(ws: WebSocket, battle_id: str):
    """
    Realtime channel. Messages are {"event": ..., "data": {...}}.

    A bad message gets an error event back; the socket stays open.
    """
    await connections.connect(battle_id, ws)
    active = battle_id
    try:
        while True:
            try:
                message = await ws.receive_json()
            except ValueError:
                await connections.send(ws, "error", {"message": "Messages must be valid JSON"})
                continue
            if not isinstance(message, dict) or not isinstance(message.get("data") or {}, dict):
                await connections.send(ws, "error", {"message": "Messages must be objects with an object 'data'"})
                continue
            data = message.get("data") or {}
            try:
                active = await _handle_socket_event(active, ws, str(message.get("event", "")), data)
            except (ArenaError, ValueError) as e:
                logger.info("Socket event %r on %s rejected: %s", message.get("event"), active, e)
                await connections.send(ws, "error", {"message": str(e)})
    except WebSocketDisconnect:
        logger.debug("Client left %s", active)
    finally:
        connections.disconnect(ws)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("arena_backend.main:app", host="127.0.0.1", port=8000, reload=False)
