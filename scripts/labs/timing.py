#!/usr/bin/env python3
"""
Timing Host and Device Code -- perf_counter vs cupyx.profiler.benchmark

GPU kernels launch asynchronously: the Python call returns as soon as the
work is queued, long before the GPU is done. Wrapping a CuPy call in
time.perf_counter() therefore measures the launch, not the computation.
cupyx.profiler.benchmark records CUDA events around every repeat and
synchronises, so its gpu_times are what the device actually spent.

Host code has no such problem, so the host path keeps plain wall-clock timing
(the same thing %timeit does in IPython).

Usage:
    python scripts/labs/timing.py --verify
    python scripts/labs/timing.py --demo --device auto

Key regions exported for tutorials:
    - time_host: repeat-and-measure with time.perf_counter
    - time_device: cupyx.profiler.benchmark, reporting GPU times
    - speedup: ratio of mean times
"""
from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

import numpy as np

# Ensure project root is on sys.path for cross-module imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))


@dataclass
class TimingResult:
    """Per-repeat wall times (seconds) for one function on one backend."""
    name: str
    backend: str  # "cpu" or "cuda"
    times: list[float] = field(default_factory=list)

    @property
    def mean(self) -> float:
        return float(np.mean(self.times)) if self.times else float("nan")

    @property
    def std(self) -> float:
        return float(np.std(self.times)) if self.times else float("nan")

    @property
    def min(self) -> float:
        return float(np.min(self.times)) if self.times else float("nan")

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "backend": self.backend,
            "n_repeat": len(self.times),
            "mean_s": self.mean,
            "std_s": self.std,
            "min_s": self.min,
            "times_s": list(self.times),
        }


def _check_counts(n_repeat: int, n_warmup: int) -> None:
    if n_repeat < 1:
        raise ValueError(f"n_repeat must be >= 1, got {n_repeat}")
    if n_warmup < 0:
        raise ValueError(f"n_warmup must be >= 0, got {n_warmup}")


def _func_name(func: Callable[..., Any], name: str | None) -> str:
    return name or getattr(func, "__name__", type(func).__name__)


# --8<-- [start:time_host]
def time_host(
    func: Callable[..., Any],
    args: Sequence[Any] = (),
    n_repeat: int = 10,
    n_warmup: int = 1,
    name: str | None = None,
) -> TimingResult:
    """Wall-clock each of n_repeat calls after n_warmup untimed ones."""
    _check_counts(n_repeat, n_warmup)

    for _ in range(n_warmup):
        func(*args)

    times = []
    for _ in range(n_repeat):
        t0 = time.perf_counter()
        func(*args)
        times.append(time.perf_counter() - t0)
    return TimingResult(name=_func_name(func, name), backend="cpu", times=times)
# --8<-- [end:time_host]


# --8<-- [start:time_device]
def time_device(
    func: Callable[..., Any],
    args: Sequence[Any] = (),
    n_repeat: int = 10,
    n_warmup: int = 1,
    name: str | None = None,
) -> TimingResult:
    """Benchmark a GPU call with CUDA events; returns device 0's GPU times."""
    from cupyx.profiler import benchmark

    _check_counts(n_repeat, n_warmup)

    name = _func_name(func, name)
    perf = benchmark(func, tuple(args), n_repeat=n_repeat, n_warmup=n_warmup, name=name)
    # gpu_times has shape (n_devices, n_repeat)
    gpu_times = np.asarray(perf.gpu_times)[0]
    return TimingResult(name=name, backend="cuda", times=[float(t) for t in gpu_times])
# --8<-- [end:time_device]


def time_call(
    func: Callable[..., Any],
    args: Sequence[Any] = (),
    device: str = "auto",
    n_repeat: int = 10,
    n_warmup: int = 1,
    name: str | None = None,
) -> TimingResult:
    """Time func on the given device ("cpu" always uses the host timer)."""
    from scripts.labs.gpu_convolution import resolve_device

    if resolve_device(device) == "cuda":
        return time_device(func, args, n_repeat=n_repeat, n_warmup=n_warmup, name=name)
    return time_host(func, args, n_repeat=n_repeat, n_warmup=n_warmup, name=name)


# --8<-- [start:speedup]
def speedup(baseline: TimingResult, candidate: TimingResult) -> float:
    """How many times faster candidate is than baseline (ratio of means)."""
    if not candidate.mean > 0:
        raise ValueError(f"candidate mean time must be > 0, got {candidate.mean}")
    return baseline.mean / candidate.mean
# --8<-- [end:speedup]


def _fmt_seconds(t: float) -> str:
    if t >= 1.0:
        return f"{t:.3f} s"
    if t >= 1e-3:
        return f"{t * 1e3:.3f} ms"
    return f"{t * 1e6:.3f} us"


def format_timing(result: TimingResult) -> str:
    """One-line summary, e.g. 'convolve2d (cpu): mean 1.234 s +/- 10.000 ms (min ..., n=10)'."""
    return (
        f"{result.name} ({result.backend}): mean {_fmt_seconds(result.mean)} "
        f"+/- {_fmt_seconds(result.std)} "
        f"(min {_fmt_seconds(result.min)}, n={len(result.times)})"
    )


# =============================================================================
# Verification
# =============================================================================

def verify_host_timer():
    """Verify time_host repeats, warms up and measures sleep accurately."""
    print("Verifying host timer...")

    calls = []

    def work():
        calls.append(1)
        time.sleep(0.01)

    result = time_host(work, n_repeat=3, n_warmup=2)
    assert len(calls) == 5, f"Expected 5 calls (2 warmup + 3 timed), got {len(calls)}"
    assert len(result.times) == 3, f"Expected 3 times, got {len(result.times)}"
    assert result.backend == "cpu"
    assert result.name == "work", f"Expected name 'work', got {result.name!r}"
    assert result.min >= 0.009, f"sleep(0.01) measured as {result.min:.4f} s"

    print(f"  {format_timing(result)}")
    print("  [PASS] Host timer OK")


def verify_argument_checks():
    """Verify invalid repeat/warmup counts are rejected."""
    print("Verifying argument checks...")

    for kwargs in ({"n_repeat": 0}, {"n_warmup": -1}):
        try:
            time_host(lambda: None, **kwargs)
        except ValueError as exc:
            print(f"  {kwargs} -> ValueError: {exc}")
        else:
            raise AssertionError(f"time_host accepted {kwargs}")

    try:
        speedup(TimingResult("a", "cpu", [1.0]), TimingResult("b", "cpu", [0.0]))
    except ValueError as exc:
        print(f"  zero candidate time -> ValueError: {exc}")
    else:
        raise AssertionError("speedup accepted a zero candidate time")

    print("  [PASS] Argument checks OK")


def verify_speedup():
    """Verify the speedup ratio and unit formatting."""
    print("Verifying speedup and formatting...")

    slow = TimingResult("slow", "cpu", [2.0, 2.0])
    fast = TimingResult("fast", "cuda", [0.01, 0.03])
    ratio = speedup(slow, fast)
    assert abs(ratio - 100.0) < 1e-9, f"Expected 100x, got {ratio}"
    assert "ms" in format_timing(fast), format_timing(fast)
    assert " s " in format_timing(slow), format_timing(slow)

    print(f"  {format_timing(slow)}")
    print(f"  {format_timing(fast)}")
    print(f"  speedup = {ratio:.1f}x")
    print("  [PASS] Speedup OK")


def verify_device_timer():
    """Verify time_device returns GPU times for a CuPy call."""
    print("Verifying device timer...")

    from scripts.labs.gpu_convolution import resolve_device

    if resolve_device("auto") != "cuda":
        print("  [SKIP] No CUDA device available")
        return

    import cupy as cp

    x = cp.ones((512, 512))
    result = time_device(cp.matmul, (x, x), n_repeat=5, n_warmup=1)
    assert result.backend == "cuda"
    assert len(result.times) == 5, f"Expected 5 times, got {len(result.times)}"
    assert all(t > 0 for t in result.times), "Non-positive GPU time"

    print(f"  {format_timing(result)}")
    print("  [PASS] Device timer OK")


def run_verification():
    """Run all verification checks."""
    print("=" * 60)
    print("Timing Helpers -- Verification")
    print("=" * 60)

    verify_host_timer()
    print()
    verify_argument_checks()
    print()
    verify_speedup()
    print()
    verify_device_timer()

    print()
    print("=" * 60)
    print("[ALL PASS] Timing helpers verified")
    print("=" * 60)


# =============================================================================
# Demo
# =============================================================================

def run_demo(device: str = "auto"):
    """Show why naive wall-clock timing misleads on the GPU."""
    from scripts.labs.gpu_convolution import resolve_device

    device = resolve_device(device)

    print("=" * 60)
    print(f"Timing Helpers -- Demo (device={device})")
    print("=" * 60)

    a = np.random.default_rng(0).random((1024, 1024))
    host = time_host(np.matmul, (a, a), n_repeat=5, name="matmul")
    print(f"\n  {format_timing(host)}")

    if device != "cuda":
        print("\nNo CUDA device: nothing to compare against.")
        return

    import cupy as cp

    a_gpu = cp.asarray(a)
    naive = time_host(cp.matmul, (a_gpu, a_gpu), n_repeat=5, name="matmul (perf_counter only)")
    events = time_device(cp.matmul, (a_gpu, a_gpu), n_repeat=5, name="matmul (CUDA events)")
    print(f"  {format_timing(naive)}")
    print(f"  {format_timing(events)}")
    print("\nThe perf_counter number only covers the kernel launch; the CUDA event")
    print("number covers the work the GPU actually did.")
    print(f"Speedup over host: {speedup(host, events):.1f}x")


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description="Timing host and device code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  --verify    Run sanity checks (device checks skip without a GPU)
  --demo      Compare naive and event-based timing of a GPU call
        """
    )
    parser.add_argument("--verify", action="store_true", help="Run verification checks")
    parser.add_argument("--demo", action="store_true", help="Run demonstration")
    parser.add_argument("--device", choices=["auto", "cpu", "cuda"], default="auto")
    args = parser.parse_args()

    if args.verify:
        run_verification()
    elif args.demo:
        run_demo(device=args.device)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
