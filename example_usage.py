#!/usr/bin/env python3
"""
🔥🐧🔥 CPU Throttle Capture - Usage Example
=========================================
Copyright (c) 2025 PNGN-Tec LLC

Samples the CPU speed limit while a workload runs, then prints the
summary and the values a build scan would record.

On anything but macOS the sampler is inert and the report is empty.
"""

import asyncio
import logging
import sys
from cpu_throttle import start_cpu_performance_sampler, report_cpu_performance

async def main(duration: float = 30.0):
    logging.basicConfig(level=logging.INFO)

    print("🔥 Starting CPU throttle capture...")
    sampler = await start_cpu_performance_sampler()

    try:
        elapsed = 0.0
        while elapsed < duration:
            await asyncio.sleep(3)
            elapsed += 3
            print(f"[{elapsed:4.0f}s] Samples: {sampler.sample_count}")

    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")

    finally:
        print("\n🛑 Stopping capture...")
        await sampler.stop()

    performance = sampler.summarize()
    if performance is None:
        print("No throttling data captured")
        return

    print("📊 CPU Performance:")
    print(f"   Average: {performance.average}")
    print(f"   Min:     {performance.min}")
    print(f"   Median:  {performance.median}")
    for entry in performance.percentiles:
        print(f"   p{entry.rank}:     {entry.value}")

    report = report_cpu_performance(sampler)
    if report:
        print(f"\nBuild scan values: {report['values']}")
        print(f"Build scan tags:   {report['tags']}")

if __name__ == "__main__":
    asyncio.run(main(float(sys.argv[1]) if len(sys.argv) > 1 else 30.0))
