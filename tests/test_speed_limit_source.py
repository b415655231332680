"""
Tests for the speed limit source.

Fake commands run the current interpreter, so the subprocess path is
exercised on any platform.
"""

import asyncio
import sys
import time

import pytest

from cpu_throttle import PmsetSpeedLimitSource


def python_command(code: str) -> tuple:
    return (sys.executable, "-c", code)


@pytest.mark.asyncio
async def test_reads_speed_limit() -> None:
    source = PmsetSpeedLimitSource(
        command=python_command("print('CPU Power notify'); print('\\tCPU_Speed_Limit \\t= 87')")
    )

    assert await source.read() == 87
    assert source.read_failures == 0


@pytest.mark.asyncio
async def test_non_zero_exit_discards_output() -> None:
    source = PmsetSpeedLimitSource(
        command=python_command("import sys; print('CPU_Speed_Limit = 87'); sys.exit(1)")
    )

    assert await source.read() is None
    assert source.read_failures == 1


@pytest.mark.asyncio
async def test_invalid_utf8_in_other_lines() -> None:
    source = PmsetSpeedLimitSource(
        command=python_command(
            "import sys; "
            "sys.stdout.buffer.write(b'Note: \\xff\\xfe caf\\xe9\\nCPU_Speed_Limit = 87\\n')"
        )
    )

    assert await source.read() == 87
    assert source.read_failures == 0


@pytest.mark.asyncio
async def test_missing_field() -> None:
    source = PmsetSpeedLimitSource(command=python_command("print('CPU_Scheduler_Limit = 100')"))

    assert await source.read() is None
    assert source.read_failures == 1


@pytest.mark.asyncio
async def test_missing_command() -> None:
    source = PmsetSpeedLimitSource(command=("definitely-not-a-real-pmset-binary", "-g", "therm"))

    assert await source.read() is None
    assert source.read_failures == 1


@pytest.mark.asyncio
async def test_timeout_kills_command() -> None:
    source = PmsetSpeedLimitSource(
        command=python_command("import time; time.sleep(30)"),
        timeout=0.2,
    )

    started = time.monotonic()
    assert await source.read() is None
    assert time.monotonic() - started < 10
    assert source.read_failures == 1


@pytest.mark.asyncio
async def test_every_read_runs_the_command() -> None:
    source = PmsetSpeedLimitSource(
        command=python_command("import random; print('CPU_Speed_Limit =', random.choice([50, 60]))")
    )

    readings = [await source.read() for _ in range(3)]
    assert all(reading in (50, 60) for reading in readings)


@pytest.mark.asyncio
async def test_cancelled_read_propagates_cancellation() -> None:
    source = PmsetSpeedLimitSource(command=python_command("import time; time.sleep(30)"), timeout=30)

    task = asyncio.create_task(source.read())
    await asyncio.sleep(0.3)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=10)
