import asyncio
import json

from flocksim.app.server import FlockController
from flocksim.sim.core.config import SimulationConfig
from flocksim.sim.core.flock import TickPhase


class ExplodingRule:
    def force(self, position, neighbours):
        raise RuntimeError("boom")

    def range(self) -> float:
        return 0.0


class RecordingClient:
    def __init__(self) -> None:
        self.messages = []

    async def send_text(self, text: str) -> None:
        self.messages.append(json.loads(text))


async def _wait_for(task: asyncio.Task) -> None:
    for _ in range(500):
        if task.done():
            return
        await asyncio.sleep(0.01)


def test_snapshot_queue_ack_cleanup() -> None:
    controller = FlockController(SimulationConfig(population=20, workers=2))

    async def exercise() -> None:
        controller.scenario.step()
        await controller.publish()
        controller.scenario.step()
        await controller.publish()
        assert await controller.feed.ticks() == [1, 2]
        await controller.feed.acknowledge(1)
        assert await controller.feed.ticks() == [2]

    try:
        asyncio.run(exercise())
    finally:
        controller.scenario.close()


def test_snapshot_ticks_follow_flock_tick_count() -> None:
    controller = FlockController(SimulationConfig(population=10, workers=1))
    client = RecordingClient()

    async def exercise() -> None:
        await controller.connect(client)
        for _ in range(3):
            controller.scenario.step()
        await controller.publish()

    try:
        asyncio.run(exercise())
        assert controller.tick == controller.flock.tick_count == 3
        assert [message["tick"] for message in client.messages] == [3]
        assert client.messages[0]["payload"]["metrics"]["tick"] == 2
        assert controller.status()["tick"] == 3
    finally:
        controller.scenario.close()


def test_target_update_lands_on_next_tick() -> None:
    controller = FlockController(SimulationConfig(population=5, workers=1))
    try:
        controller.steer_home(12.0, -4.0)
        assert controller.scenario.home_rule.target == (0.0, 0.0)
        controller.scenario.step()
        assert controller.scenario.home_rule.target == (12.0, -4.0)
    finally:
        controller.scenario.close()


def test_loop_stops_and_reports_fault() -> None:
    controller = FlockController(SimulationConfig(population=5, workers=1))
    controller.scenario.program.add_rule(ExplodingRule(), 1.0)
    controller.speed_multiplier = 5.0
    client = RecordingClient()

    async def exercise() -> None:
        await controller.connect(client)
        assert await controller.start()
        await _wait_for(controller._task)
        assert controller._task.done()
        assert controller._task.exception() is None
        assert not await controller.start()

    try:
        asyncio.run(exercise())
        assert not controller.running
        assert controller.flock.phase is TickPhase.FAULTED
        status = controller.status()
        assert status["running"] is False
        assert status["phase"] == TickPhase.FAULTED.value
        assert "failed on tick 0" in status["fault"]
        assert client.messages[-1]["type"] == "fault"
        assert client.messages[-1]["message"] == status["fault"]
    finally:
        controller.scenario.close()


def test_reset_clears_fault() -> None:
    controller = FlockController(SimulationConfig(population=5, workers=1))
    controller.fault = "ForceComputation failed on tick 0"

    async def exercise() -> None:
        await controller.reset()
        assert controller.fault is None
        assert await controller.feed.ticks() == [0]
        assert await controller.start()
        controller.pause()
        controller._task.cancel()

    try:
        asyncio.run(exercise())
        assert controller.tick == 0
    finally:
        controller.scenario.close()
