import io
import os
import socket
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
import pytest

from upshift._env import ProcessDescriptor, WorkerExit
from upshift.config import Config, validate_config
from upshift.exceptions import HandshakeError
from upshift.graceful import GracefulConnection, bind_socket
from upshift.worker import DrainReason, State, Worker

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

Program = Callable[[State], Awaitable[None]]


@pytest.fixture
def listen_socket() -> Iterator[socket.socket]:
    sock = bind_socket("127.0.0.1:0")
    yield sock
    sock.close()


async def echo(connection: GracefulConnection) -> None:
    data = await connection.receive()
    await connection.send(data)


async def serve_echo(state: State) -> None:
    assert state.listener is not None
    await state.listener.serve(echo)


def make_worker(
    program: Program,
    sock: socket.socket,
    logger: "FilteringBoundLogger",
    *,
    addresses: tuple[str, ...] | None = None,
    terminate_timeout: float = 5.0,
) -> Worker:
    host, port = sock.getsockname()[:2]
    config = validate_config(
        Config(
            program=program,
            addresses=addresses or (f"{host}:{port}",),
            terminate_timeout=terminate_timeout,
        )
    )
    descriptor = ProcessDescriptor(
        worker_id="1",
        bin_id="abc123",
        fds=(os.dup(sock.fileno()),),
        bin_path=Path("/srv/app"),
    )
    return Worker(config, descriptor, logger=logger)


async def run_worker(worker: Worker, codes: list[int]) -> None:
    codes.append(await worker.run())


class TestWorker:
    @pytest.mark.anyio
    async def test_program_gets_enabled_state(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        states: list[State] = []

        async def program(state: State) -> None:
            states.append(state)

        worker = make_worker(program, listen_socket, logger)
        with anyio.fail_after(5):
            code = await worker.run()

        assert code == WorkerExit.CLEAN
        assert worker.drain_reason is DrainReason.PROGRAM_EXITED
        (state,) = states
        assert state.enabled
        assert state.id == "1"
        assert state.bin_id == "abc123"
        assert len(state.listeners) == 1
        assert state.graceful_shutdown.is_set()

    @pytest.mark.anyio
    async def test_serves_on_inherited_socket(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        port = listen_socket.getsockname()[1]
        worker = make_worker(serve_echo, listen_socket, logger)
        codes: list[int] = []

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_worker, worker, codes)

                async with await anyio.connect_tcp("127.0.0.1", port) as client:
                    await client.send(b"hello")
                    assert await client.receive() == b"hello"

                worker.begin_drain(DrainReason.RESTART)

        assert codes == [WorkerExit.RESTART]
        assert worker.drain_reason is DrainReason.RESTART

    @pytest.mark.anyio
    async def test_inherited_socket_stays_open_after_exit(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        port = listen_socket.getsockname()[1]
        worker = make_worker(serve_echo, listen_socket, logger)
        codes: list[int] = []

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_worker, worker, codes)
                await anyio.wait_all_tasks_blocked()
                worker.begin_drain(DrainReason.TERMINATE)

        # The supervisor's copy of the socket still accepts connections
        client = socket.create_connection(("127.0.0.1", port), timeout=5)
        client.close()

    @pytest.mark.anyio
    async def test_terminate_overrides_restart(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        worker = make_worker(serve_echo, listen_socket, logger)
        codes: list[int] = []

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_worker, worker, codes)
                await anyio.wait_all_tasks_blocked()
                worker.begin_drain(DrainReason.RESTART)
                worker.begin_drain(DrainReason.TERMINATE)

        assert codes == [WorkerExit.CLEAN]
        assert worker.drain_reason is DrainReason.TERMINATE

    @pytest.mark.anyio
    async def test_restart_does_not_override_terminate(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        worker = make_worker(serve_echo, listen_socket, logger)
        codes: list[int] = []

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_worker, worker, codes)
                await anyio.wait_all_tasks_blocked()
                worker.begin_drain(DrainReason.TERMINATE)
                worker.begin_drain(DrainReason.RESTART)

        assert codes == [WorkerExit.CLEAN]

    @pytest.mark.anyio
    async def test_program_error_exits_with_error(
        self,
        listen_socket: socket.socket,
        logger: "FilteringBoundLogger",
        log_stream: io.StringIO,
    ) -> None:
        async def program(state: State) -> None:
            msg = "boom"
            raise RuntimeError(msg)

        worker = make_worker(program, listen_socket, logger)
        with anyio.fail_after(5):
            code = await worker.run()

        assert code == WorkerExit.ERROR
        assert "program_failed" in log_stream.getvalue()

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("reason", "expected"),
        [
            (DrainReason.TERMINATE, WorkerExit.CLEAN),
            (DrainReason.RESTART, WorkerExit.RESTART),
        ],
    )
    async def test_accept_after_drain_keeps_exit_code(
        self,
        listen_socket: socket.socket,
        logger: "FilteringBoundLogger",
        log_stream: io.StringIO,
        reason: DrainReason,
        expected: WorkerExit,
    ) -> None:
        async def program(state: State) -> None:
            assert state.listener is not None
            while True:
                connection = await state.listener.accept()
                await connection.aclose()

        worker = make_worker(program, listen_socket, logger)
        codes: list[int] = []

        with anyio.fail_after(5):
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_worker, worker, codes)
                await anyio.sleep(0.1)

                worker.begin_drain(reason)

        assert codes == [expected]
        assert "program_failed" not in log_stream.getvalue()

    @pytest.mark.anyio
    async def test_drain_deadline_closes_idle_connection(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        port = listen_socket.getsockname()[1]
        accepted = anyio.Event()

        async def hold(connection: GracefulConnection) -> None:
            accepted.set()
            _ = await connection.receive()

        async def program(state: State) -> None:
            assert state.listener is not None
            await state.listener.serve(hold)

        worker = make_worker(program, listen_socket, logger, terminate_timeout=0.2)
        codes: list[int] = []

        with anyio.fail_after(10):
            async with anyio.create_task_group() as tg:
                tg.start_soon(run_worker, worker, codes)
                client = await anyio.connect_tcp("127.0.0.1", port)
                await accepted.wait()

                worker.begin_drain(DrainReason.TERMINATE)

            with pytest.raises((anyio.EndOfStream, anyio.BrokenResourceError)):
                _ = await client.receive()
            await client.aclose()

        assert codes == [WorkerExit.CLEAN]

    @pytest.mark.anyio
    async def test_descriptor_count_mismatch(
        self, listen_socket: socket.socket, logger: "FilteringBoundLogger"
    ) -> None:
        worker = make_worker(
            serve_echo,
            listen_socket,
            logger,
            addresses=(":8080", ":8081"),
        )

        with pytest.raises(HandshakeError, match="1 listeners for 2 addresses"):
            _ = await worker.run()
