#!/usr/bin/env python3
"""
🐧 CPU Throttle Capture Configuration
====================================
Copyright (c) 2025 PNGN-Tec LLC

Tuning constants for macOS CPU speed-limit sampling.
Per-sampler overrides go through constructor arguments in cpu_throttle.py.
"""

# ============================================================================
# SIGNAL SOURCE
# ============================================================================

SPEED_LIMIT_COMMAND = ('pmset', '-g', 'therm')
SPEED_LIMIT_FIELD = 'CPU_Speed_Limit'
SPEED_LIMIT_COMMAND_TIMEOUT = 2.0       # seconds, must stay under SAMPLE_INTERVAL
SPEED_LIMIT_ENCODING = 'utf-8'
SPEED_LIMIT_DECODE_ERRORS = 'replace'   # undecodable bytes become U+FFFD

# Readings outside a 32-bit signed int are treated as unparsable
SPEED_LIMIT_MIN = -2**31
SPEED_LIMIT_MAX = 2**31 - 1

# ============================================================================
# SAMPLING
# ============================================================================

SAMPLE_INITIAL_DELAY = 0.0              # seconds before first tick
SAMPLE_INTERVAL = 3.0                   # seconds between ticks (fixed rate)

# pmset only exists on macOS
SUPPORTED_PLATFORMS = ('darwin',)

# ============================================================================
# STATISTICS
# ============================================================================

PERCENTILE_LADDER = (50, 75, 95, 99)
MISSING_PERCENTILE = -1                 # reported for every rank with <= 1 sample

# ============================================================================
# BUILD SCAN REPORTING
# ============================================================================

BUILD_SCAN_AVERAGE_KEY = 'CPU Performance Average'
BUILD_SCAN_MAX_KEY = 'CPU Performance Max'          # carries the most throttled reading
BUILD_SCAN_MEDIAN_KEY = 'CPU Performance Median'

THROTTLED_AVERAGE_THRESHOLD = 100       # speed limit %, below = throttled
THROTTLED_TAG = 'CPU_THROTTLED'
