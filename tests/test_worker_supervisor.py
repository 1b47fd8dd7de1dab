import asyncio

from ams_actions import __main__ as worker_main


class FakeProcessor:
    lease_holder = "worker-a:1"

    def __init__(self, processed: int = 0, error: Exception | None = None) -> None:
        self.processed = processed
        self.error = error

    async def run_once(self) -> int:
        if self.error is not None:
            raise self.error
        return self.processed


def test_worker_tick_records_heartbeat(monkeypatch) -> None:
    heartbeats: list[tuple[str, dict[str, object]]] = []

    async def fake_upsert(status_id: str, payload: dict[str, object]) -> None:
        heartbeats.append((status_id, payload))

    monkeypatch.setattr(worker_main, "upsert_system_status", fake_upsert)

    payload = asyncio.run(worker_main.run_worker_tick(FakeProcessor(processed=3), heartbeat_enabled=True))

    assert payload["actions_processed"] == 3
    assert payload["errors"] == 0
    assert payload["holder"] == "worker-a:1"
    assert heartbeats == [("worker", payload)]


def test_worker_tick_counts_processing_errors(monkeypatch) -> None:
    async def fake_upsert(status_id: str, payload: dict[str, object]) -> None:
        raise AssertionError("heartbeat disabled")

    monkeypatch.setattr(worker_main, "upsert_system_status", fake_upsert)

    payload = asyncio.run(
        worker_main.run_worker_tick(FakeProcessor(error=RuntimeError("lease rpc down")), heartbeat_enabled=False)
    )

    assert payload["actions_processed"] == 0
    assert payload["errors"] == 1


def test_supervisor_loop_stops_on_event(monkeypatch) -> None:
    ticks: list[int] = []
    stop_event = asyncio.Event()

    async def fake_tick(processor, *, heartbeat_enabled: bool):
        ticks.append(1)
        stop_event.set()
        return {"actions_processed": 1}

    monkeypatch.setattr(worker_main, "build_action_processor", lambda emitter=None: FakeProcessor())
    monkeypatch.setattr(worker_main, "run_worker_tick", fake_tick)

    async def scenario() -> None:
        await worker_main.run_worker_supervisor_loop(stop_event=stop_event)

    asyncio.run(scenario())

    assert ticks == [1]


def test_build_action_processor_uses_settings() -> None:
    processor = worker_main.build_action_processor()

    assert processor.batch_limit == 10
    assert processor.max_attempts == 5
    assert processor.lease_seconds == 120
    assert processor.lease_holder.endswith(f":{worker_main.os.getpid()}")
