#!/usr/bin/env python3
from __future__ import annotations

import asyncio
import json
import os
import time
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import SIM_CONFIG
from dispatch import PLAYER_DISPATCH_FRACTION
from match import Match, event_to_dict
from world import DEFAULT_DIFFICULTY, FACTION_COLORS, FACTION_NAMES, OUTCOME_IN_PROGRESS

FRAME_DELAY: float = float(SIM_CONFIG.get("frame_delay", 1.0 / 30.0))

BASE_DIR = Path(__file__).resolve().parent

_simulation_task: asyncio.Task | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    await start_simulation()
    try:
        yield
    finally:
        if _simulation_task:
            _simulation_task.cancel()
            await asyncio.gather(_simulation_task, return_exceptions=True)


app = FastAPI(lifespan=lifespan)

print(">>> Starting conquest host with FRAME_DELAY =", FRAME_DELAY)

match: Match = Match.new(difficulty=DEFAULT_DIFFICULTY)
match_lock = asyncio.Lock()
RUN_COUNTER = 1
RUN_LOG_DIR = BASE_DIR / "logs" / "runs"


class DispatchRequest(BaseModel):
    sources: List[int]
    target: int
    fraction: float = PLAYER_DISPATCH_FRACTION


def dump_run_history(history: list[dict], difficulty: str, outcome: str, end_time: float, run_id: int) -> Path:
    payload = {
        "outcome": outcome,
        "difficulty": difficulty,
        "end_time": end_time,
        "factions": {str(fid): name for fid, name in FACTION_NAMES.items()},
        "history": history,
    }
    RUN_LOG_DIR.mkdir(parents=True, exist_ok=True)
    fname = f"match_{run_id:04d}_{outcome}.json"
    out_path = RUN_LOG_DIR / fname
    out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return out_path


@app.get("/")
async def index():
    """Lightweight health endpoint for the host."""
    return JSONResponse({"status": "ok", "service": "conquest-host"})


@app.get("/state")
async def state_endpoint():
    async with match_lock:
        data = match.snapshot()
    data["factions"] = [
        {"id": fid, "name": name, "color": FACTION_COLORS.get(fid, "#ffffff")}
        for fid, name in FACTION_NAMES.items()
    ]
    return JSONResponse(data)


@app.get("/holding/{holding_id}")
async def holding_detail(holding_id: int):
    """Current holding stats plus the match history that involves it."""
    async with match_lock:
        holding = match.holding(holding_id)
        if holding is None:
            return JSONResponse({"error": "not found"}, status_code=404)
        inbound = sum(1 for u in match.units if u.target.id == holding_id)
        data = {
            "id": holding.id,
            "x": holding.x,
            "y": holding.y,
            "owner": holding.owner,
            "owner_name": FACTION_NAMES.get(holding.owner, str(holding.owner)),
            "population": holding.population,
            "capacity": holding.capacity,
            "inbound_units": inbound,
            "history": [event_to_dict(ev) for ev in match.state.history if holding_id in ev.holdings],
        }
    return JSONResponse(data)


@app.post("/dispatch")
async def dispatch_endpoint(req: DispatchRequest):
    """Queue one dispatch per source; validation happens when the tick applies them."""
    async with match_lock:
        queued = match.dispatch_many(req.sources, req.target, req.fraction)
    return JSONResponse({"queued": queued})


@app.post("/assault/{target_id}")
async def assault_endpoint(target_id: int):
    async with match_lock:
        queued = match.dispatch_mass_assault(target_id)
    return JSONResponse({"queued": queued})


@app.post("/pause")
async def pause_endpoint():
    async with match_lock:
        match.pause()
        paused = match.paused
    return JSONResponse({"paused": paused})


@app.post("/resume")
async def resume_endpoint():
    async with match_lock:
        match.resume()
        paused = match.paused
    return JSONResponse({"paused": paused})


@app.post("/restart")
async def restart_endpoint(difficulty: Optional[str] = None):
    global match
    async with match_lock:
        match = Match.new(difficulty=difficulty or DEFAULT_DIFFICULTY)
        name = match.state.difficulty.name
    print(f"SIM: new match started (difficulty={name})")
    return JSONResponse({"difficulty": name, "holdings": len(match.holdings)})


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    print("WS: incoming connection")
    await ws.accept()
    print("WS: client accepted")
    try:
        while True:
            async with match_lock:
                payload = match.snapshot()
            payload["frame_delay"] = FRAME_DELAY
            await ws.send_json(payload)
            await asyncio.sleep(FRAME_DELAY)
    except WebSocketDisconnect:
        print("WS: client disconnected")
        return
    except Exception:
        print("WS: unexpected error in websocket handler:")
        traceback.print_exc()
        return


async def start_simulation() -> None:
    global _simulation_task
    print(">>> startup: simulation task starting")

    async def run():
        global RUN_COUNTER
        last = time.perf_counter()
        while True:
            try:
                finished = None
                now = time.perf_counter()
                elapsed = now - last
                last = now

                async with match_lock:
                    was_running = match.outcome == OUTCOME_IN_PROGRESS
                    match.advance_tick(elapsed)
                    if was_running and match.outcome != OUTCOME_IN_PROGRESS:
                        finished = (
                            [event_to_dict(ev) for ev in match.state.history],
                            match.state.difficulty.name,
                            match.outcome,
                            match.clock,
                        )

                if finished is not None:
                    history, difficulty, outcome, end_time = finished
                    path = dump_run_history(history, difficulty, outcome, end_time, RUN_COUNTER)
                    print(f"SIM: match {RUN_COUNTER} ended at t={end_time:.1f}s, outcome={outcome}; history saved to {path}")
                    RUN_COUNTER += 1
                await asyncio.sleep(FRAME_DELAY)
            except Exception:
                print("SIM: error in background loop:")
                traceback.print_exc()
                await asyncio.sleep(1.0)

    _simulation_task = asyncio.create_task(run())


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", SIM_CONFIG.get("port", 8000)))
    reload_flag = os.environ.get("RELOAD", "").lower() in {"1", "true", "yes", "on"}
    uvicorn.run("main:app", host=host, port=port, reload=reload_flag)
