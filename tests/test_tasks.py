import asyncio

from avatar_studio.services.tasks import BackgroundTaskRunner


def test_join_waits_for_submitted_work() -> None:
    runner = BackgroundTaskRunner()
    done: list[str] = []

    async def work(name: str) -> None:
        await asyncio.sleep(0)
        done.append(name)

    async def scenario() -> int:
        runner.submit("a", work("a"))
        runner.submit("b", work("b"))
        pending = runner.pending
        await runner.join()
        return pending

    assert asyncio.run(scenario()) == 2
    assert sorted(done) == ["a", "b"]
    assert runner.pending == 0


def test_failures_do_not_escape_the_runner() -> None:
    runner = BackgroundTaskRunner()
    done: list[str] = []

    async def broken() -> None:
        raise RuntimeError("boom")

    async def healthy() -> None:
        done.append("ok")

    async def scenario() -> None:
        task = runner.submit("training:1", broken())
        runner.submit("training:2", healthy())
        await runner.join()
        assert task.exception() is None

    asyncio.run(scenario())

    assert done == ["ok"]
    assert runner.pending == 0


def test_close_cancels_outstanding_tasks() -> None:
    runner = BackgroundTaskRunner()
    cancelled: list[bool] = []

    async def forever() -> None:
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    async def scenario() -> None:
        runner.submit("generation:1", forever())
        await asyncio.sleep(0)
        await runner.close()

    asyncio.run(scenario())

    assert cancelled == [True]
    assert runner.pending == 0
