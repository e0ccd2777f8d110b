#!/usr/bin/env python3
"""Episode 01: Reproduce the lesson's host vs device convolution timings.

For each image size, blurs the deltas image with the Gaussian kernel three
ways and times each:

    host              scipy.signal.convolve2d on NumPy arrays
    device            cupyx.scipy.signal.convolve2d on arrays already on the GPU
    device+transfers  copy in, convolve on the GPU, copy the result back

then checks the host and device results agree (np.allclose) and writes one
JSON record per size for scripts/ep01_plot.py.

Without a CUDA device the script still runs: the device columns are timed on
the host path and the record carries device="cpu".

Usage:
    # The lesson's numbers (2048x2048 image, 15x15 kernel)
    python scripts/ep01_convolution_speedup.py

    # Scaling with image size
    python scripts/ep01_convolution_speedup.py --sizes 512,1024,2048,4096

    # Quick CPU-only smoke run
    python scripts/ep01_convolution_speedup.py --device cpu --sizes 128 --n-repeat 2
"""
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

# Ensure project root is on sys.path for cross-module imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.labs.gpu_convolution import (  # noqa: E402
    DEVICES,
    convolve_device,
    convolve_host,
    convolve_with_transfers,
    make_deltas,
    make_gaussian_kernel,
    resolve_device,
    results_agree,
    to_device,
)
from scripts.labs.timing import format_timing, speedup, time_call, time_host  # noqa: E402


def _parse_sizes(raw: str) -> list[int]:
    try:
        sizes = [int(x.strip()) for x in raw.split(",") if x.strip()]
    except ValueError:
        raise SystemExit(f"Invalid --sizes: {raw!r} (expected e.g. 512,1024,2048)")
    if not sizes or any(s < 1 for s in sizes):
        raise SystemExit(f"Invalid --sizes: {raw!r} (need at least one positive size)")
    return sizes


def _gather_versions() -> dict[str, str]:
    versions: dict[str, str] = {"python": sys.version.replace("\n", " ")}
    for module_name in ["numpy", "scipy", "cupy"]:
        try:
            module = __import__(module_name)
            versions[module_name] = getattr(module, "__version__", "unknown")
        except Exception:
            pass
    return versions


def run_size(
    size: int,
    device: str,
    kernel_size: int,
    sigma: float,
    n_repeat: int,
    n_warmup: int,
) -> dict:
    """Time host, device and device+transfers convolution for one image size."""
    deltas = make_deltas(size=size)
    gauss = make_gaussian_kernel(size=kernel_size, sigma=sigma)

    host = time_host(convolve_host, (deltas, gauss), n_repeat=n_repeat, n_warmup=n_warmup,
                     name="convolve2d")
    host_result = convolve_host(deltas, gauss)

    if device == "cuda":
        deltas_gpu = to_device(deltas)
        gauss_gpu = to_device(gauss)
        dev = time_call(convolve_device, (deltas_gpu, gauss_gpu), device="cuda",
                        n_repeat=n_repeat, n_warmup=n_warmup, name="convolve2d")
        dev_transfers = time_call(convolve_with_transfers, (deltas, gauss), device="cuda",
                                  n_repeat=n_repeat, n_warmup=n_warmup,
                                  name="convolve_with_transfers")
        device_result = convolve_device(deltas_gpu, gauss_gpu)
    else:
        dev = time_host(convolve_host, (deltas, gauss), n_repeat=n_repeat, n_warmup=n_warmup,
                        name="convolve2d")
        dev_transfers = dev
        device_result = host_result

    match = results_agree(host_result, device_result)

    print(f"[size={size}] {format_timing(host)}")
    print(f"[size={size}] {format_timing(dev)}")
    print(f"[size={size}] {format_timing(dev_transfers)}")
    print(f"[size={size}] results match: {match}")

    return {
        "size": size,
        "kernel_size": kernel_size,
        "sigma": sigma,
        "output_shape": list(host_result.shape),
        "host": host.to_dict(),
        "device": dev.to_dict(),
        "device_with_transfers": dev_transfers.to_dict(),
        "speedup": speedup(host, dev),
        "speedup_with_transfers": speedup(host, dev_transfers),
        "results_match": match,
    }


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Time host vs device convolution of the deltas image.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--device", choices=list(DEVICES), default="auto")
    parser.add_argument("--sizes", default="2048", help="Comma-separated image side lengths.")
    parser.add_argument("--kernel-size", type=int, default=15)
    parser.add_argument("--sigma", type=float, default=1.0)
    parser.add_argument("--n-repeat", type=int, default=10)
    parser.add_argument("--n-warmup", type=int, default=1)
    parser.add_argument("--out-dir", default="results")
    parser.add_argument("--json-out", default="", help="Explicit JSON path (overrides --out-dir).")
    args = parser.parse_args()

    sizes = _parse_sizes(args.sizes)
    device = resolve_device(args.device)
    print(f"[bench] device={device} sizes={sizes} kernel={args.kernel_size}x{args.kernel_size} "
          f"n_repeat={args.n_repeat}")

    try:
        results = [
            run_size(size, device, args.kernel_size, args.sigma, args.n_repeat, args.n_warmup)
            for size in sizes
        ]
    except ValueError as exc:
        raise SystemExit(f"Invalid arguments: {exc}")

    record = {
        "created_at": datetime.now(timezone.utc).isoformat(),
        "versions": _gather_versions(),
        "device": device,
        "n_repeat": args.n_repeat,
        "n_warmup": args.n_warmup,
        "results": results,
    }

    # Summary
    print(f"\n{'size':>6} | {'host':>12} | {'device':>12} | {'dev+xfer':>12} | {'speedup':>8} | {'w/ xfer':>8}")
    print("-" * 72)
    for r in results:
        print(f"{r['size']:>6} | {r['host']['mean_s']:>10.4f} s | {r['device']['mean_s']:>10.4f} s | "
              f"{r['device_with_transfers']['mean_s']:>10.4f} s | {r['speedup']:>7.1f}x | "
              f"{r['speedup_with_transfers']:>7.1f}x")

    if args.json_out:
        out_path = Path(args.json_out).expanduser().resolve()
    else:
        out_path = Path(args.out_dir).expanduser().resolve() / f"ep01_speedup_{device}.json"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(record, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    print(f"OK: wrote {out_path}")

    if not all(r["results_match"] for r in results):
        print("FAIL: host and device results differ", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
