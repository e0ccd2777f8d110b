#!/usr/bin/env python3
"""Episode 01: Generate the lesson's figures.

Reads JSON results produced by ep01_convolution_speedup.py and generates
matplotlib figures for the episode.

Figures:
    1. speedup  -- Mean convolution time per image size: host, device,
                   device+transfers (log scale bars)
    2. arrays   -- Top-left 32x32 corner of the deltas image next to the same
                   corner after convolution (computed on the host)
    3. all      -- Generate all figures

Usage:
    python scripts/ep01_plot.py all
    python scripts/ep01_plot.py speedup --results-dir results --out-dir figures --device cuda
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")  # headless backend
import matplotlib.pyplot as plt
import numpy as np

# Ensure project root is on sys.path for cross-module imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.labs.gpu_convolution import convolve_host, make_deltas, make_gaussian_kernel  # noqa: E402

# ---------------------------------------------------------------------------
# Colorblind-friendly palette (Wong 2011) -- matches project convention
# ---------------------------------------------------------------------------
COLOR_BLUE = "#0072B2"
COLOR_ORANGE = "#E69F00"
COLOR_VERMILLION = "#D55E00"
COLOR_GRAY = "#999999"

SERIES_STYLE = {
    "host": {"color": COLOR_BLUE, "label": "Host (SciPy)"},
    "device": {"color": COLOR_VERMILLION, "label": "Device (CuPy)"},
    "device_with_transfers": {"color": COLOR_ORANGE, "label": "Device + transfers"},
}


def _load_json(path: Path) -> dict:
    with open(path) as f:
        return json.load(f)


def _setup_style():
    """Set consistent plot style."""
    plt.rcParams.update({
        "font.size": 11,
        "axes.titlesize": 13,
        "axes.labelsize": 12,
        "xtick.labelsize": 10,
        "ytick.labelsize": 10,
        "legend.fontsize": 10,
        "figure.dpi": 150,
        "savefig.dpi": 150,
        "axes.grid": True,
        "grid.alpha": 0.3,
        "axes.spines.top": False,
        "axes.spines.right": False,
    })


# ---------------------------------------------------------------------------
# Figure 1: Timing per image size
# ---------------------------------------------------------------------------
def plot_speedup(results_dir: Path, out_dir: Path, device: str = "cuda") -> list[Path]:
    """Grouped bars of mean time per image size, annotated with the speedup."""
    fpath = results_dir / f"ep01_speedup_{device}.json"
    if not fpath.exists():
        print(f"  [skip] {fpath}")
        return []

    _setup_style()
    data = _load_json(fpath)
    results = data["results"]
    sizes = [r["size"] for r in results]
    x = np.arange(len(sizes))
    width = 0.27

    fig, ax = plt.subplots(figsize=(7, 4.5))
    for i, (key, style) in enumerate(SERIES_STYLE.items()):
        means = [r[key]["mean_s"] for r in results]
        stds = [r[key]["std_s"] for r in results]
        ax.bar(x + (i - 1) * width, means, width, yerr=stds, capsize=3,
               color=style["color"], label=style["label"], zorder=3)

    for xi, r in zip(x, results):
        top = max(r["host"]["mean_s"], r["device"]["mean_s"])
        ax.annotate(f"{r['speedup']:.0f}x", (xi, top),
                    textcoords="offset points", xytext=(0, 6),
                    fontsize=9, ha="center", color=COLOR_GRAY)

    ax.set_yscale("log")
    ax.set_xticks(x)
    ax.set_xticklabels([f"{s}x{s}" for s in sizes])
    ax.set_xlabel("Image size")
    ax.set_ylabel("Mean time per convolution (s)")
    ax.set_title(f"convolve2d: host vs device ({data['device']})")
    ax.legend(loc="upper left", framealpha=0.9, edgecolor="none")
    fig.tight_layout()

    out = out_dir / f"ep01_speedup_{device}.png"
    fig.savefig(out, bbox_inches="tight")
    plt.close(fig)
    print(f"  Saved: {out}")
    return [out]


# ---------------------------------------------------------------------------
# Figure 2: What the convolution does to the deltas
# ---------------------------------------------------------------------------
def plot_arrays(results_dir: Path, out_dir: Path, device: str = "cuda") -> list[Path]:
    """Corner of the deltas image before and after blurring with the kernel."""
    _setup_style()

    deltas = make_deltas(size=64)
    gauss = make_gaussian_kernel()
    convolved = convolve_host(deltas, gauss)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(8, 4))
    ax1.imshow(deltas[0:32, 0:32])
    ax1.set_title("deltas[0:32, 0:32]")
    ax2.imshow(convolved[0:32, 0:32])
    ax2.set_title("convolved[0:32, 0:32]")
    for ax in (ax1, ax2):
        ax.grid(False)
    fig.tight_layout()

    out = out_dir / "ep01_arrays.png"
    fig.savefig(out, bbox_inches="tight")
    plt.close(fig)
    print(f"  Saved: {out}")
    return [out]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def main():
    parser = argparse.ArgumentParser(description="Generate ep01 figures")
    parser.add_argument("command", choices=["speedup", "arrays", "all"])
    parser.add_argument("--results-dir", default="results")
    parser.add_argument("--out-dir", default="figures")
    parser.add_argument("--device", choices=["cpu", "cuda"], default="cuda",
                        help="Which results file to plot (ep01_speedup_<device>.json)")
    args = parser.parse_args()

    results_dir = Path(args.results_dir)
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    if args.command == "speedup" and not results_dir.exists():
        print(f"Results directory not found: {results_dir}", file=sys.stderr)
        return 1

    dispatch = {
        "speedup": plot_speedup,
        "arrays": plot_arrays,
    }

    if args.command == "all":
        all_paths = []
        for name, func in dispatch.items():
            print(f"\n--- {name} ---")
            all_paths.extend(func(results_dir, out_dir, args.device))
        print(f"\nGenerated {len(all_paths)} figures in {out_dir}/")
    else:
        paths = dispatch[args.command](results_dir, out_dir, args.device)
        print(f"\nGenerated {len(paths)} figures")

    return 0


if __name__ == "__main__":
    sys.exit(main())
