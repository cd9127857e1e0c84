"""Async command execution for the Termux:API helpers."""

from __future__ import annotations

import asyncio
import logging
import os

LOGGER = logging.getLogger(__name__)

RC_TIMEOUT = 124
RC_NOT_FOUND = 127


class CommandRunner:
    """Execute device commands.  Override for testing."""

    async def run(
        self,
        args: list[str],
        *,
        timeout: float = 30,
        env: dict[str, str] | None = None,
    ) -> tuple[int, str, str]:
        """Return (returncode, stdout, stderr)."""
        merged_env = {**os.environ, **(env or {})}
        proc: asyncio.subprocess.Process | None = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=merged_env,
            )
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            return (
                proc.returncode or 0,
                stdout_bytes.decode(errors="replace"),
                stderr_bytes.decode(errors="replace"),
            )
        except TimeoutError:
            if proc is not None:
                try:
                    proc.kill()
                    await proc.wait()
                except ProcessLookupError:
                    pass
            LOGGER.warning("Command timed out after %.0fs: %s", timeout, " ".join(args))
            return (RC_TIMEOUT, "", "Command timed out")
        except FileNotFoundError:
            return (RC_NOT_FOUND, "", f"Command not found: {args[0]}")
        except OSError as exc:
            return (1, "", str(exc))

    async def spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        """Start a long-lived process with piped stdout.

        Raises ``FileNotFoundError`` / ``OSError`` when it cannot be started.
        """
        return await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )


async def terminate_process(proc: asyncio.subprocess.Process, *, timeout: float = 2.0) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
        await asyncio.wait_for(proc.wait(), timeout=timeout)
    except ProcessLookupError:
        return
    except TimeoutError:
        try:
            proc.kill()
            await proc.wait()
        except ProcessLookupError:
            pass
