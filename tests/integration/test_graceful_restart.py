import signal
import socket
from collections.abc import Callable

from tests.integration.conftest import EchoApp, request, try_request, wait_until

StartApp = Callable[..., EchoApp]


class TestGracefulRestart:
    def test_serves_through_supervisor(self, echo_app: StartApp) -> None:
        app = echo_app()

        assert request(app.ports[0], b"hello") == "1:0:hello"
        assert app.stop() == 0

    def test_restart_signal_replaces_worker(self, echo_app: StartApp) -> None:
        app = echo_app()
        assert request(app.ports[0], b"a") == "1:0:a"

        app.send_signal(signal.SIGUSR2)

        wait_until(lambda: try_request(app.ports[0], b"b") == "2:0:b")
        assert app.process.poll() is None
        assert app.stop() == 0

    def test_in_flight_request_survives_restart(self, echo_app: StartApp) -> None:
        app = echo_app()

        with socket.create_connection(("127.0.0.1", app.ports[0]), timeout=10) as conn:
            conn.sendall(b"slow")
            conn.shutdown(socket.SHUT_WR)
            reader = conn.makefile("rb")
            assert reader.readline() == b"1:0:ack\n"

            app.send_signal(signal.SIGUSR2)

            # The old worker finishes the request before it exits
            assert reader.read() == b"1:0:slow"

        wait_until(lambda: try_request(app.ports[0], b"c") == "2:0:c")
        assert app.stop() == 0

    def test_listeners_keep_address_order(self, echo_app: StartApp) -> None:
        app = echo_app(listeners=3)

        for index, port in enumerate(app.ports):
            assert request(port, b"x") == f"1:{index}:x"

        app.send_signal(signal.SIGUSR2)
        wait_until(lambda: try_request(app.ports[0], b"y") == "2:0:y")

        for index, port in enumerate(app.ports):
            assert request(port, b"z") == f"2:{index}:z"
        assert app.stop() == 0

    def test_terminate_exits_cleanly(self, echo_app: StartApp) -> None:
        app = echo_app()
        assert request(app.ports[0], b"a") == "1:0:a"

        app.send_signal(signal.SIGTERM)

        assert app.process.wait(timeout=15) == 0
        assert try_request(app.ports[0], b"b") is None
