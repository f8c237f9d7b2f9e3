"""Echo service run under upshift by the integration tests.

Usage: echo_app.py ADDRESS [ADDRESS ...]

Each reply is ``<worker id>:<listener index>:<payload>``. A payload of
``slow`` is answered with an ``ack`` line first and the rest of the reply
after a delay, so tests can restart while a request is in flight.
"""

import sys

import anyio

import upshift
from upshift.graceful import GracefulConnection

SLOW_DELAY = 1.0


async def program(state: upshift.State) -> None:
    def make_handler(index: int):  # noqa: ANN202
        async def handle(connection: GracefulConnection) -> None:
            chunks: list[bytes] = []
            try:
                while True:
                    chunks.append(await connection.receive())
            except anyio.EndOfStream:
                pass

            payload = b"".join(chunks).decode()
            prefix = f"{state.id}:{index}:"
            if payload == "slow":
                await connection.send(f"{prefix}ack\n".encode())
                await anyio.sleep(SLOW_DELAY)
            await connection.send(f"{prefix}{payload}".encode())

        return handle

    async with anyio.create_task_group() as tg:
        for index, listener in enumerate(state.listeners):
            tg.start_soon(listener.serve, make_handler(index))


if __name__ == "__main__":
    upshift.run(
        upshift.Config(
            program=program,
            addresses=tuple(sys.argv[1:]),
            terminate_timeout=5.0,
            required=True,
        )
    )
