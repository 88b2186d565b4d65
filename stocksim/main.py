from __future__ import annotations

import asyncio
import os
import logging
import json
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from stocksim.config import Config, load_config
from stocksim.effects.market import MarketEvent
from stocksim.engine import build_engine
from stocksim.schemas import MarketEventType, Tier


ROOT = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = (ROOT.parent / "config" / "config.yaml").resolve()
log = logging.getLogger("uvicorn.error")


class RoundRequest(BaseModel):
    tiers: Optional[list[Tier]] = None


class EventRequest(BaseModel):
    event_type: MarketEventType
    target_stock_id: Optional[int] = None
    price_effect_percent: float
    duration: float = Field(gt=0.0)


def _config_path() -> Path:
    p = os.getenv("STOCKSIM_CONFIG")
    if not p:
        return DEFAULT_CONFIG_PATH
    return Path(p).expanduser().resolve()


def _load() -> Config:
    p = _config_path()
    if not p.exists():
        log.warning("config not found at %s, using defaults", p)
        return Config()
    return load_config(p)


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg if cfg is not None else _load()
    logging.getLogger("stocksim").setLevel(cfg.app.log_level.upper())

    engine = build_engine(cfg)
    feed = engine.feed
    engine.new_round()

    app = FastAPI(title="Stock Price Simulator", version="0.1.0")
    app.state.cfg = cfg
    app.state.engine = engine

    @app.on_event("startup")
    async def _startup() -> None:
        engine.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await engine.stop()

    @app.get("/api/snapshot")
    async def snapshot() -> dict:
        return engine.snapshot()

    @app.get("/api/health")
    async def health() -> dict:
        return engine.health()

    @app.get("/api/debug")
    async def debug() -> list[dict]:
        return engine.debug()

    @app.post("/api/round")
    async def new_round(req: Optional[RoundRequest] = None) -> dict:
        engine.new_round(req.tiers if req is not None else None)
        return engine.snapshot()

    @app.post("/api/events")
    async def start_event(req: EventRequest) -> dict:
        event = MarketEvent(
            event_type=req.event_type,
            target_stock_id=req.target_stock_id,
            price_effect_percent=req.price_effect_percent,
            duration=req.duration,
        )
        try:
            engine.start_event(event)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return engine.snapshot()

    @app.get("/api/ws_clients")
    async def ws_clients() -> dict:
        return {"clients": await feed.client_count()}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        clients = await feed.attach(websocket)
        log.info("WS connected: %s (clients=%s)", websocket.client, clients)
        try:
            await websocket.send_text(
                json.dumps(
                    {"type": "snapshot", "data": engine.snapshot()},
                    ensure_ascii=False,
                    default=str,
                )
            )
            # ticks are pushed by the engine; the client may narrow what it watches
            while True:
                try:
                    raw = await asyncio.wait_for(websocket.receive_text(), timeout=60.0)
                except asyncio.TimeoutError:
                    continue
                await _handle_client_message(websocket, raw)
        except WebSocketDisconnect:
            clients = await feed.detach(websocket)
            log.info("WS disconnected: %s (clients=%s)", websocket.client, clients)
        except Exception:
            await feed.detach(websocket)
            log.exception("WS error: %s", websocket.client)

    async def _handle_client_message(websocket: WebSocket, raw: str) -> None:
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_text(json.dumps({"type": "error", "error": "invalid JSON"}))
            return
        if not isinstance(msg, dict) or msg.get("type") != "watch":
            await websocket.send_text(json.dumps({"type": "error", "error": "unknown message"}))
            return
        ids = msg.get("stock_ids")
        try:
            if ids is not None and not isinstance(ids, list):
                raise TypeError(ids)
            watched = await feed.watch(websocket, ids)
        except (TypeError, ValueError):
            await websocket.send_text(json.dumps({"type": "error", "error": "stock_ids must be integers"}))
            return
        await websocket.send_text(json.dumps({"type": "watching", "stock_ids": watched}))

    return app


app = create_app()
