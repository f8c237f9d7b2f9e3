import anyio
import pytest

from upshift.graceful import WaitGroup


class TestWaitGroup:
    def test_starts_at_zero(self) -> None:
        assert WaitGroup().count == 0

    def test_add_and_done(self) -> None:
        group = WaitGroup()
        group.add(2)
        group.done()
        assert group.count == 1

    def test_cannot_go_negative(self) -> None:
        group = WaitGroup()
        with pytest.raises(ValueError, match="negative"):
            group.done()
        assert group.count == 0

    @pytest.mark.anyio
    async def test_wait_returns_at_once_when_empty(self) -> None:
        with anyio.fail_after(1):
            await WaitGroup().wait()

    @pytest.mark.anyio
    async def test_wait_blocks_until_zero(self) -> None:
        group = WaitGroup()
        group.add(2)
        finished: list[bool] = []

        async def waiter() -> None:
            await group.wait()
            finished.append(True)

        async with anyio.create_task_group() as tg:
            tg.start_soon(waiter)
            await anyio.wait_all_tasks_blocked()

            group.done()
            await anyio.wait_all_tasks_blocked()
            assert finished == []

            group.done()

        assert finished == [True]

    @pytest.mark.anyio
    async def test_reusable_after_reaching_zero(self) -> None:
        group = WaitGroup()
        group.add()
        group.done()
        group.add()

        async with anyio.create_task_group() as tg:
            tg.start_soon(group.wait)
            await anyio.wait_all_tasks_blocked()
            group.done()
