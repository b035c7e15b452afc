import anyio
import pytest

from vehosts_runner.exceptions import ProjectBusyError
from vehosts_runner.run_guard import ProjectRunGuard


@pytest.mark.asyncio
async def test_acquire_and_release() -> None:
    guard = ProjectRunGuard()

    async with guard.acquire("p1", "alice") as slot:
        assert slot.project_id == "p1"
        assert slot.owner_key == "alice"
        assert guard.is_running("p1")

    assert not guard.is_running("p1")


@pytest.mark.asyncio
async def test_second_run_of_same_project_rejected() -> None:
    guard = ProjectRunGuard()

    async with guard.acquire("p1", "alice"):
        with pytest.raises(ProjectBusyError) as excinfo:
            async with guard.acquire("p1", "alice"):
                pass  # pragma: no cover
        assert excinfo.value.project_id == "p1"
        # The rejected attempt must not release the holder's slot.
        assert guard.is_running("p1")


@pytest.mark.asyncio
async def test_slot_released_on_error() -> None:
    guard = ProjectRunGuard()

    with pytest.raises(ValueError):
        async with guard.acquire("p1", "alice"):
            raise ValueError("boom")

    assert guard.active == {}


@pytest.mark.asyncio
async def test_different_projects_run_concurrently() -> None:
    guard = ProjectRunGuard()
    seen: list[set[str]] = []

    async def hold(project_id: str) -> None:
        async with guard.acquire(project_id, "alice"):
            await anyio.sleep(0.05)
            seen.append(set(guard.active))

    async with anyio.create_task_group() as tg:
        tg.start_soon(hold, "p1")
        tg.start_soon(hold, "p2")

    assert {"p1", "p2"} in seen
    assert guard.active == {}


@pytest.mark.asyncio
async def test_concurrent_runs_of_one_project_admit_exactly_one() -> None:
    guard = ProjectRunGuard()
    outcomes: list[str] = []

    async def attempt() -> None:
        try:
            async with guard.acquire("p1", "alice"):
                await anyio.sleep(0.05)
                outcomes.append("ran")
        except ProjectBusyError:
            outcomes.append("busy")

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(attempt)

    assert sorted(outcomes) == ["busy"] * 4 + ["ran"]
