"""Test helpers for stack-plugin tools."""

import asyncio
from dataclasses import dataclass
import os
import sys


@dataclass
class Result:
    """Outcome of running the command line tool."""

    returncode: int
    stdout: str
    stderr: str


async def run_command(args: list[str], env: dict[str, str] | None = None) -> Result:
    """Run the stack-plugin command in a subprocess."""
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "stack_plugin",
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, **(env or {})},
    )
    out, err = await proc.communicate()
    assert proc.returncode is not None
    return Result(proc.returncode, out.decode(), err.decode())
