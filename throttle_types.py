#!/usr/bin/env python3
"""
🐧 CPU Throttle Capture Type Definitions
=======================================
Copyright (c) 2025 PNGN-Tec LLC

Shared type system for speed-limit sampling. Enums and immutable
dataclasses returned to whoever owns a sampling session.
"""

from dataclasses import dataclass, field
from typing import Tuple, Optional
from enum import Enum, auto

# ============================================================================
# ENUMS
# ============================================================================

class SamplerMode(Enum):
    """Sampler variant chosen by the platform capability check"""
    ACTIVE = auto()
    INERT = auto()

    @property
    def collects_samples(self) -> bool:
        """Check if this mode ever produces readings"""
        return self is SamplerMode.ACTIVE

# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Percentile:
    """Value at a percentile rank (value is -1 when too few samples)"""
    rank: int
    value: int

@dataclass(frozen=True)
class CpuPerformance:
    """
    Summary of CPU speed-limit readings collected so far.

    Attributes:
        average: Arithmetic mean, truncated to int
        min: Lowest reading, i.e. the most throttled sample
        median: Upper median (element at len // 2 of sorted readings)
        percentiles: One entry per rank of the percentile ladder, in order
    """
    average: int
    min: int
    median: int
    percentiles: Tuple[Percentile, ...] = field(default_factory=tuple)

    def percentile(self, rank: int) -> Optional[int]:
        """Look up the value for a ladder rank"""
        for entry in self.percentiles:
            if entry.rank == rank:
                return entry.value
        return None

# ============================================================================
# EXPORT ALL PUBLIC TYPES
# ============================================================================

__all__ = [
    # Enums
    'SamplerMode',

    # Data structures
    'Percentile',
    'CpuPerformance',
]
