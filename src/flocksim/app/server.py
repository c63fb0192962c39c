from __future__ import annotations

import argparse
import asyncio
import json
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from loguru import logger
from pygame.math import Vector2

from ..sim.core.config import SimulationConfig
from ..sim.core.flock import Flock, PipelineFault
from .scenario import PredatorScenario


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SnapshotFeed:
    """Serialized flock snapshots held until a client acknowledges their tick."""

    def __init__(self) -> None:
        self._pending: deque[QueuedSnapshot] = deque()
        self._lock = asyncio.Lock()

    async def publish(self, item: QueuedSnapshot) -> None:
        async with self._lock:
            self._pending.append(item)

    async def after(self, tick: int) -> List[QueuedSnapshot]:
        async with self._lock:
            return [item for item in self._pending if item.tick > tick]

    async def acknowledge(self, tick: int) -> None:
        async with self._lock:
            while self._pending and self._pending[0].tick <= tick:
                self._pending.popleft()

    async def ticks(self) -> List[int]:
        async with self._lock:
            return [item.tick for item in self._pending]

    async def clear(self) -> None:
        async with self._lock:
            self._pending.clear()


class FlockController:
    """Drives a `PredatorScenario` from the event loop and streams its snapshots.

    Tick numbers come from the flock itself. A `PipelineFault` stops the loop
    for good: the population is left as the failed tick found it, `fault`
    holds the reason, and only `reset` brings the controller back.
    """

    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.scenario = PredatorScenario(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.speed_multiplier = 1.0
        self.fault: Optional[str] = None
        self.feed = SnapshotFeed()
        self._cursors: Dict[WebSocket, int] = {}
        self._step_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def flock(self) -> Flock:
        return self.scenario.flock

    @property
    def tick(self) -> int:
        return self.flock.tick_count

    async def start(self) -> bool:
        if self.fault is not None:
            return False
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        self.running = True
        return True

    def pause(self) -> None:
        self.running = False

    async def shutdown(self) -> None:
        self.running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self.scenario.close()

    async def reset(self) -> None:
        async with self._step_lock:
            self.scenario.close()
            self.scenario = PredatorScenario(self.config)
            self.fault = None
        await self.feed.clear()
        for client in self._cursors:
            self._cursors[client] = -1
        logger.info("Flock reset to tick 0")
        await self.publish()

    def steer_home(self, x: float, y: float) -> None:
        home_rule = self.scenario.home_rule

        def _apply() -> None:
            home_rule.target = Vector2(x, y)

        self.flock.post_update(_apply)

    def status(self) -> Dict[str, Any]:
        flock = self.flock
        metrics = flock.metrics
        return {
            "running": self.running,
            "tick": flock.tick_count,
            "population": len(flock.drones),
            "phase": flock.phase.value,
            "fault": self.fault,
            "metrics": asdict(metrics) if metrics is not None else None,
        }

    async def publish(self) -> None:
        await self.feed.publish(self._encode())
        await self._fan_out()

    async def connect(self, client: WebSocket) -> None:
        self._cursors[client] = -1
        await self.deliver(client)

    def disconnect(self, client: WebSocket) -> None:
        self._cursors.pop(client, None)

    async def deliver(self, client: WebSocket) -> None:
        cursor = self._cursors.get(client, -1)
        for item in await self.feed.after(cursor):
            await client.send_text(item.payload)
            cursor = item.tick
        self._cursors[client] = cursor

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if not self.running:
                continue
            try:
                async with self._step_lock:
                    self.scenario.step()
            except PipelineFault as exc:
                self.running = False
                self.fault = str(exc)
                logger.exception(f"Flock faulted at tick {self.tick}; loop stopped until reset")
                await self._announce_fault()
                return
            if self.tick % self.broadcast_interval == 0:
                await self.publish()

    def _encode(self) -> QueuedSnapshot:
        snapshot = self.flock.snapshot()
        message = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "tick": snapshot.tick,
                "metrics": asdict(snapshot.metrics),
                "drones": snapshot.drones,
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(message))

    async def _announce_fault(self) -> None:
        message = json.dumps({"type": "fault", "tick": self.tick, "message": self.fault})
        for client in list(self._cursors):
            try:
                await client.send_text(message)
            except WebSocketDisconnect:
                self.disconnect(client)

    async def _fan_out(self) -> None:
        for client in list(self._cursors):
            try:
                await self.deliver(client)
            except WebSocketDisconnect:
                self.disconnect(client)


app = FastAPI(title="Flocking Simulation")
controller = FlockController(SimulationConfig())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()
    logger.info("Flock loop started")


@app.on_event("shutdown")
async def _shutdown() -> None:
    await controller.shutdown()
    logger.info("Flock loop stopped")


@app.get("/api/status")
async def status() -> JSONResponse:
    return JSONResponse(controller.status())


@app.post("/api/control/{action}")
async def control(action: str) -> JSONResponse:
    if action == "start":
        if not await controller.start():
            raise HTTPException(status_code=409, detail=f"flock faulted: {controller.fault}")
    elif action == "stop":
        controller.pause()
    elif action == "reset":
        await controller.reset()
    else:
        raise HTTPException(status_code=404, detail=f"unknown action {action!r}")
    return JSONResponse({"running": controller.running, "tick": controller.tick})


@app.post("/api/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = float(payload.get("multiplier", 1.0))
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/target")
async def set_target(payload: dict) -> JSONResponse:
    x = float(payload.get("x", 0.0))
    y = float(payload.get("y", 0.0))
    controller.steer_home(x, y)
    return JSONResponse({"x": x, "y": y})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    await controller.connect(websocket)
    logger.info("Snapshot client connected")
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if payload.get("type") == "ack" and isinstance(payload.get("tick"), int):
                await controller.feed.acknowledge(payload["tick"])
    except WebSocketDisconnect:
        controller.disconnect(websocket)
        logger.info("Snapshot client disconnected")


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve flocking snapshots over a websocket")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--config", type=Path, default=None, help="YAML file overriding SimulationConfig")
    parser.add_argument("--broadcast-interval", type=int, default=1)
    args = parser.parse_args()
    global controller
    if args.config or args.broadcast_interval != 1:
        config = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()
        controller.scenario.close()
        controller = FlockController(config, broadcast_interval=args.broadcast_interval)
    uvicorn.run(app, host=args.host, port=args.port)


__all__ = ["app", "controller"]
