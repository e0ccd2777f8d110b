#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path


def _maybe_run(cmd: list[str]) -> str | None:
    try:
        out = subprocess.check_output(cmd, stderr=subprocess.STDOUT, text=True)
        return out.strip()
    except Exception:
        return None


def _module_version(name: str) -> str | None:
    try:
        module = __import__(name)
        return getattr(module, "__version__", None) or "unknown"
    except Exception:
        return None


def _cuda_info() -> dict | None:
    try:
        import cupy as cp

        n_devices = cp.cuda.runtime.getDeviceCount()
        info = {
            "runtime_version": cp.cuda.runtime.runtimeGetVersion(),
            "driver_version": cp.cuda.runtime.driverGetVersion(),
            "device_count": n_devices,
            "devices": [],
        }
        for i in range(n_devices):
            props = cp.cuda.runtime.getDeviceProperties(i)
            name = props["name"]
            info["devices"].append({
                "id": i,
                "name": name.decode() if isinstance(name, bytes) else str(name),
                "total_memory": int(props["totalGlobalMem"]),
                "compute_capability": f"{props['major']}.{props['minor']}",
            })
        return info
    except Exception:
        return None


def gather_snapshot() -> dict:
    return {
        "created_at": datetime.now(timezone.utc).isoformat(),
        "python": sys.version.replace("\n", " "),
        "env": {k: os.environ.get(k) for k in ["CUDA_VISIBLE_DEVICES", "CUPY_CACHE_DIR", "CUDA_PATH"] if os.environ.get(k)},
        "packages": {
            name: _module_version(name)
            for name in ["numpy", "scipy", "cupy", "matplotlib", "yaml"]
            if _module_version(name) is not None
        },
        "cuda": _cuda_info(),
        "nvidia_smi": {
            "version": _maybe_run(["nvidia-smi", "--version"]),
            "list": _maybe_run(["nvidia-smi", "-L"]),
        },
    }


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Print a reproducibility-friendly environment/version snapshot.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--json-out", default="", help="Write JSON to this path (optional).")
    args = parser.parse_args()

    snapshot = gather_snapshot()

    print(json.dumps(snapshot, indent=2, sort_keys=True))
    if args.json_out:
        out_path = Path(args.json_out).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(snapshot, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        print(f"OK: wrote {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
