#!/usr/bin/env python3
"""
🔥🐧🔥 CPU Throttle Capture
=========================
Copyright (c) 2025 PNGN-Tec LLC

Samples macOS CPU thermal throttling during a build or any other
long-running session and summarizes it for reporting.

ARCHITECTURE:
- Signal source: runs `pmset -g therm` and extracts CPU_Speed_Limit
- Sampler: asyncio task ticking at a fixed rate (0s initial delay, 3s period)
- Statistics: average, min, upper median, percentile ladder (50/75/95/99)
- Platform capability check once at creation: active sampler on macOS,
  inert sampler everywhere else

SPEED LIMIT:
100 means the CPU runs unrestricted. Lower values mean the OS capped the
clock because of temperature, so readings are sorted ascending and the
first one is the most throttled.

FAILURES:
Every failure (missing command, non-zero exit, timeout, unparsable output)
collapses to "no reading this tick". Sampling never raises into its owner.
"""

import sys
import re
import abc
import math
import asyncio
import logging
import threading
from typing import Dict, List, Optional, Sequence, Any, Deque
from collections import deque
import numpy as np

from throttle_config import (
    SPEED_LIMIT_COMMAND,
    SPEED_LIMIT_FIELD,
    SPEED_LIMIT_COMMAND_TIMEOUT,
    SPEED_LIMIT_ENCODING,
    SPEED_LIMIT_DECODE_ERRORS,
    SPEED_LIMIT_MIN,
    SPEED_LIMIT_MAX,
    SAMPLE_INITIAL_DELAY,
    SAMPLE_INTERVAL,
    SUPPORTED_PLATFORMS,
    PERCENTILE_LADDER,
    MISSING_PERCENTILE,
    BUILD_SCAN_AVERAGE_KEY,
    BUILD_SCAN_MAX_KEY,
    BUILD_SCAN_MEDIAN_KEY,
    THROTTLED_AVERAGE_THRESHOLD,
    THROTTLED_TAG,
)
from throttle_types import SamplerMode, Percentile, CpuPerformance

# Configure logging
logger = logging.getLogger('PNGN.CpuThrottle')

# Decimal integer with optional sign (no underscores, no unicode digits)
INTEGER_TOKEN = re.compile(r'[+-]?[0-9]+')

# ============================================================================
# SIGNAL SOURCE
# ============================================================================

def parse_speed_limit(output: str, field: str = SPEED_LIMIT_FIELD) -> Optional[int]:
    """
    Extract the speed limit from `pmset -g therm` output.

    Only the first line starting with the field name is considered, e.g.
    ``CPU_Speed_Limit \t= 87``. Returns None if that line is missing or
    its value is not an integer in the 32-bit signed range.
    """
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith(field):
            continue

        _, separator, value = line.partition('=')
        if not separator:
            return None

        tokens = value.split()
        if not tokens or not INTEGER_TOKEN.fullmatch(tokens[0]):
            return None

        reading = int(tokens[0])
        if not SPEED_LIMIT_MIN <= reading <= SPEED_LIMIT_MAX:
            return None
        return reading

    return None


class PmsetSpeedLimitSource:
    """
    Reads the CPU speed limit by running an external command.
    Fresh invocation on every read, no caching.
    """

    def __init__(self,
                 command: Sequence[str] = SPEED_LIMIT_COMMAND,
                 field: str = SPEED_LIMIT_FIELD,
                 timeout: float = SPEED_LIMIT_COMMAND_TIMEOUT):
        self.command = tuple(command)
        self.field = field
        self.timeout = timeout
        self.read_failures = 0

    async def read(self) -> Optional[int]:
        """
        Run the command once and parse its output.

        Returns:
            Speed limit reading, or None on launch failure, non-zero exit,
            timeout, or unparsable output.
        """
        proc = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL
            )

            stdout, _ = await asyncio.wait_for(
                proc.communicate(),
                timeout=self.timeout
            )

            if proc.returncode != 0:
                self.read_failures += 1
                logger.debug(f"{self.command[0]} exited with {proc.returncode}")
                return None

            output = stdout.decode(SPEED_LIMIT_ENCODING, SPEED_LIMIT_DECODE_ERRORS)
            reading = parse_speed_limit(output, self.field)

        except asyncio.TimeoutError:
            self.read_failures += 1
            logger.debug(f"{self.command[0]} timed out after {self.timeout}s")
            return None
        except OSError as e:
            self.read_failures += 1
            logger.debug(f"Failed to run {self.command[0]}: {e}")
            return None
        finally:
            # Kill a command left running by a timeout or cancellation
            if proc and proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        if reading is None:
            self.read_failures += 1
            logger.debug(f"No {self.field} value in {self.command[0]} output")
        return reading

# ============================================================================
# STATISTICS
# ============================================================================

def percentile(sorted_samples: Sequence[int], rank: int) -> int:
    """
    Nearest-rank percentile of ascending samples.
    Needs at least two samples, otherwise returns MISSING_PERCENTILE.
    """
    if len(sorted_samples) > 1:
        index = math.ceil(rank / 100.0 * len(sorted_samples))
        return int(sorted_samples[index - 1])
    return MISSING_PERCENTILE


def summarize_samples(samples: Sequence[int],
                      ladder: Sequence[int] = PERCENTILE_LADDER) -> Optional[CpuPerformance]:
    """Summarize readings, None when there are none"""
    if len(samples) == 0:
        return None

    # Ascending: lower speed limit = harder throttling, so the worst comes first
    ordered = np.sort(np.asarray(samples, dtype=np.int64))

    return CpuPerformance(
        average=int(np.mean(ordered)),
        min=int(ordered[0]),
        median=int(ordered[len(ordered) // 2]),
        percentiles=tuple(Percentile(rank, percentile(ordered, rank)) for rank in ladder)
    )

# ============================================================================
# SAMPLERS
# ============================================================================

def is_platform_supported(platform: Optional[str] = None) -> bool:
    """Check if the speed limit command exists on this platform"""
    return (platform or sys.platform) in SUPPORTED_PLATFORMS


class BaseCpuPerformanceSampler(abc.ABC):
    """Interface shared by the active and inert samplers"""

    mode = SamplerMode.INERT

    def __init__(self, interval: float = SAMPLE_INTERVAL):
        self.interval = interval
        self.running = False

    @abc.abstractmethod
    async def start(self):
        """Begin sampling, if this variant samples at all"""

    @abc.abstractmethod
    async def stop(self):
        """Stop sampling for good; safe to call more than once"""

    @abc.abstractmethod
    def summarize(self) -> Optional[CpuPerformance]:
        """Summary of readings so far, None without data"""

    @property
    def sample_count(self) -> int:
        return 0

    def get_statistics(self) -> Dict[str, Any]:
        """Get basic sampler statistics"""
        return {
            'mode': self.mode.name,
            'running': self.running,
            'samples_collected': self.sample_count,
            'sample_interval': self.interval,
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()


class CpuPerformanceSampler(BaseCpuPerformanceSampler):
    """
    Samples the CPU speed limit at a fixed rate and summarizes on demand.

    Readings are appended from the sampling task; summarize() may be called
    from any thread at any time and works on a snapshot.
    """

    mode = SamplerMode.ACTIVE

    def __init__(self,
                 source: Optional[PmsetSpeedLimitSource] = None,
                 interval: float = SAMPLE_INTERVAL,
                 initial_delay: float = SAMPLE_INITIAL_DELAY):
        super().__init__(interval)
        self.source = source if source is not None else PmsetSpeedLimitSource()
        self.initial_delay = initial_delay

        # Unbounded for the whole session, never cleared
        self.samples: Deque[int] = deque()
        self._samples_lock = threading.Lock()

        self.sampler_task: Optional[asyncio.Task] = None
        self.stopped = False
        self.ticks = 0

        logger.info("CPU performance sampler initializing...")

    async def start(self):
        """Start sampling on the running event loop"""
        if self.running or self.stopped:
            return

        self.running = True
        self.sampler_task = asyncio.create_task(self._sample_loop())

        logger.info(f"CPU performance sampler started ({self.interval}s interval)")

    async def stop(self):
        """Stop sampling immediately, abandoning any in-flight command"""
        if self.stopped:
            return

        self.running = False
        self.stopped = True

        if self.sampler_task:
            self.sampler_task.cancel()
            try:
                await self.sampler_task
            except asyncio.CancelledError:
                pass
            self.sampler_task = None

        logger.info(f"CPU performance sampler stopped after {self.ticks} ticks, "
                    f"{self.sample_count} samples")

    async def _sample_loop(self):
        """Fixed-rate loop: a late tick runs at once, ticks never overlap"""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.initial_delay

        while self.running:
            delay = next_tick - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)

            try:
                await self._on_tick()
            except Exception as e:
                logger.error(f"Sampling tick error: {e}")

            next_tick += self.interval

    async def _on_tick(self):
        """Take one reading and keep it if present"""
        self.ticks += 1
        logger.debug("Query speed limit")

        reading = await self.source.read()
        logger.debug(f"Speed limit: {reading}")

        if reading is not None:
            with self._samples_lock:
                self.samples.append(reading)

    @property
    def sample_count(self) -> int:
        with self._samples_lock:
            return len(self.samples)

    def summarize(self) -> Optional[CpuPerformance]:
        """Summarize every reading collected so far, None if there are none"""
        with self._samples_lock:
            snapshot = list(self.samples)
        return summarize_samples(snapshot)


class InertCpuPerformanceSampler(BaseCpuPerformanceSampler):
    """Stand-in for platforms without pmset: never samples, never has data"""

    async def start(self):
        logger.info("Not running on macOS - no thermal throttling data will be captured")

    async def stop(self):
        self.running = False

    def summarize(self) -> Optional[CpuPerformance]:
        return None

# ============================================================================
# REPORTING
# ============================================================================

def build_scan_values(performance: CpuPerformance) -> Dict[str, str]:
    """Custom values a build scan records for a summary"""
    return {
        BUILD_SCAN_AVERAGE_KEY: str(performance.average),
        BUILD_SCAN_MAX_KEY: str(performance.min),
        BUILD_SCAN_MEDIAN_KEY: str(performance.median),
    }


def build_scan_tags(performance: CpuPerformance) -> List[str]:
    """Tags a build scan gets for a summary"""
    if performance.average < THROTTLED_AVERAGE_THRESHOLD:
        return [THROTTLED_TAG]
    return []


def report_cpu_performance(sampler: BaseCpuPerformanceSampler) -> Optional[Dict[str, Any]]:
    """
    Summarize a sampler into build scan values and tags.

    Returns:
        {'values': {...}, 'tags': [...]} or None if nothing was sampled
    """
    performance = sampler.summarize()
    if performance is None:
        logger.info("No CPU performance samples to report")
        return None

    logger.info(f"CPU performance: {performance}")
    return {
        'values': build_scan_values(performance),
        'tags': build_scan_tags(performance),
    }

# ============================================================================
# FACTORY
# ============================================================================

def create_cpu_performance_sampler(supported: Optional[bool] = None,
                                   source: Optional[PmsetSpeedLimitSource] = None,
                                   interval: float = SAMPLE_INTERVAL,
                                   initial_delay: float = SAMPLE_INITIAL_DELAY) -> BaseCpuPerformanceSampler:
    """
    Create the sampler variant for this platform (not started).

    Args:
        supported: Override the platform capability check
        source: Speed limit source, defaults to pmset
    """
    if supported is None:
        supported = is_platform_supported()

    if supported:
        return CpuPerformanceSampler(source=source, interval=interval, initial_delay=initial_delay)
    return InertCpuPerformanceSampler(interval=interval)


async def start_cpu_performance_sampler(supported: Optional[bool] = None,
                                        source: Optional[PmsetSpeedLimitSource] = None,
                                        interval: float = SAMPLE_INTERVAL,
                                        initial_delay: float = SAMPLE_INITIAL_DELAY) -> BaseCpuPerformanceSampler:
    """Create a sampler and start it right away if the platform supports it"""
    sampler = create_cpu_performance_sampler(supported, source, interval, initial_delay)
    await sampler.start()
    return sampler
