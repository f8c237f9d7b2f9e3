"""Binary sanity check.

Before a binary is trusted to replace the running one it is started with
``UPSHIFT_BIN_CHECK=<token>`` and must echo the token to stdout and exit
zero. A binary built with upshift answers this in :func:`upshift.run`
before doing anything else.
"""

import os
import secrets
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path

import anyio

from upshift._env import ENV_BIN_CHECK, launch_command, strip_handshake
from upshift.exceptions import SanityCheckError


def answer_sanity_check(environ: Mapping[str, str] | None = None) -> bool:
    """Print the sanity check token if one was requested.

    Args:
        environ: Environment to inspect. Defaults to ``os.environ``.

    Returns:
        True if a check was requested and answered. The caller must then
        exit without doing any other work.
    """
    env = os.environ if environ is None else environ
    token = env.get(ENV_BIN_CHECK)
    if not token:
        return False
    _ = sys.stdout.write(token)
    sys.stdout.flush()
    return True


async def run_sanity_check(path: Path, *, timeout: float) -> None:
    """Check that the binary at ``path`` starts and answers its token.

    Args:
        path: The binary to check.
        timeout: Seconds the binary gets to answer.

    Raises:
        SanityCheckError: If the binary cannot start, exits non-zero, does
            not print the token, or does not finish in time.
    """
    token = secrets.token_hex(8)
    env = strip_handshake(os.environ)
    env[ENV_BIN_CHECK] = token

    try:
        with anyio.fail_after(timeout):
            result = await anyio.run_process(
                launch_command(path, []),
                env=env,
                check=False,
                stdin=subprocess.DEVNULL,
            )
    except TimeoutError:
        msg = f"sanity check timed out after {timeout:.1f}s"
        raise SanityCheckError(msg, path=path, timed_out=True) from None
    except OSError as e:
        msg = f"sanity check failed to start {path}: {e}"
        raise SanityCheckError(msg, path=path) from e

    output = result.stdout.decode("utf-8", errors="replace")
    if result.returncode != 0:
        msg = f"sanity check exited with code {result.returncode}"
        raise SanityCheckError(msg, path=path, output=output)
    if output.strip() != token:
        msg = "sanity check failed: binary did not answer with the expected token"
        raise SanityCheckError(msg, path=path, output=output)
