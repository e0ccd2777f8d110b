#!/usr/bin/env python3
"""
Convolution on the Host and on the Device -- CuPy vs NumPy/SciPy

The lesson's worked example: a 2048x2048 image of regularly spaced single-pixel
"stars" (the deltas image) is blurred with a 15x15 Gaussian kernel. The same
call is made twice, once with SciPy on host (CPU) memory and once with CuPy
on device (GPU) memory. Nothing here implements convolution; the point is
which library gets called, where the arrays live, and how data moves between
host and device.

Usage:
    # Run verification (sanity checks, a few seconds on CPU)
    python scripts/labs/gpu_convolution.py --verify

    # Walk through the lesson's steps and print what happens
    python scripts/labs/gpu_convolution.py --demo --device auto

Key regions exported for tutorials:
    - resolve_device: pick "cuda" when CuPy sees a GPU, else "cpu"
    - deltas_image: the image of regularly spaced deltas
    - gaussian_kernel: the 15x15 Gaussian kernel
    - host_convolution: scipy.signal.convolve2d on NumPy arrays
    - host_device_copies: cp.asarray / cp.asnumpy
    - device_convolution: cupyx.scipy.signal.convolve2d on CuPy arrays
    - transfer_compute_transferback: the "fair comparison" function
    - validate_results: np.allclose after copying back to the host
    - diagonal_convolution: np.convolve dispatching to CuPy

Reference:
    CuPy documentation, "Interoperability" (NumPy __array_function__ support)
    and "cupyx.scipy.signal.convolve2d".
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Callable

import numpy as np
from scipy.signal import convolve2d as convolve2d_cpu

# Ensure project root is on sys.path for cross-module imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

DEVICES = ("auto", "cpu", "cuda")


# =============================================================================
# Device selection
# =============================================================================

# --8<-- [start:resolve_device]
def resolve_device(device: str) -> str:
    """Map "auto" to "cuda" when CuPy can see a GPU, otherwise to "cpu"."""
    if device not in DEVICES:
        raise ValueError(f"Unknown device {device!r}; expected one of {DEVICES}")
    if device != "auto":
        return device
    try:
        import cupy as cp

        return "cuda" if cp.cuda.runtime.getDeviceCount() > 0 else "cpu"
    except Exception:
        return "cpu"
# --8<-- [end:resolve_device]


def get_array_module(device: str):
    """Return numpy for the host and cupy for the device."""
    device = resolve_device(device)
    if device == "cuda":
        import cupy as cp

        return cp
    return np


# =============================================================================
# Input arrays
# =============================================================================

# --8<-- [start:deltas_image]
def make_deltas(size: int = 2048, spacing: int = 16, offset: int = 8, xp=np):
    """Image of zeros with a one every `spacing` pixels, starting at `offset`.

    With the defaults this is a 2048x2048 float64 array holding a 128x128 grid
    of isolated ones -- each of them will turn into a copy of the kernel after
    convolution, which makes the result easy to eyeball.
    """
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")
    if spacing < 1:
        raise ValueError(f"spacing must be >= 1, got {spacing}")
    if not 0 <= offset < spacing:
        raise ValueError(f"offset must be in [0, {spacing}), got {offset}")

    deltas = xp.zeros((size, size))
    deltas[offset::spacing, offset::spacing] = 1
    return deltas
# --8<-- [end:deltas_image]


# --8<-- [start:gaussian_kernel]
def make_gaussian_kernel(
    size: int = 15,
    extent: float = 2.0,
    sigma: float = 1.0,
    mu: float = 0.0,
    xp=np,
):
    """Sample exp(-(d - mu)^2 / (2 sigma^2)) on a size x size grid over [-extent, extent].

    The kernel is not normalised: its centre value is exactly 1.
    """
    if size < 1 or size % 2 == 0:
        raise ValueError(f"size must be a positive odd number, got {size}")
    if sigma <= 0:
        raise ValueError(f"sigma must be > 0, got {sigma}")

    x, y = xp.meshgrid(xp.linspace(-extent, extent, size),
                       xp.linspace(-extent, extent, size))
    dst = xp.sqrt(x * x + y * y)
    return xp.exp(-((dst - mu) ** 2 / (2.0 * sigma ** 2)))
# --8<-- [end:gaussian_kernel]


# =============================================================================
# Host (CPU) convolution
# =============================================================================

# --8<-- [start:host_convolution]
def convolve_host(image: np.ndarray, kernel: np.ndarray, mode: str = "full") -> np.ndarray:
    """2D convolution of NumPy arrays with SciPy, computed by the CPU."""
    return convolve2d_cpu(image, kernel, mode=mode)
# --8<-- [end:host_convolution]


# =============================================================================
# Moving data between host and device
# =============================================================================

# --8<-- [start:host_device_copies]
def to_device(array: Any):
    """Copy a host array into device memory (no-op for arrays already there)."""
    import cupy as cp

    return cp.asarray(array)


def to_host(array: Any) -> np.ndarray:
    """Copy a device array back into host memory (no-op for NumPy arrays)."""
    if isinstance(array, np.ndarray):
        return array
    import cupy as cp

    return cp.asnumpy(array)
# --8<-- [end:host_device_copies]


# =============================================================================
# Device (GPU) convolution
# =============================================================================

# --8<-- [start:device_convolution]
def convolve_device(image, kernel, mode: str = "full"):
    """2D convolution of CuPy arrays with cupyx.scipy, computed by the GPU.

    Both inputs must already live in device memory; the result stays there.
    """
    from cupyx.scipy.signal import convolve2d as convolve2d_gpu

    return convolve2d_gpu(image, kernel, mode=mode)
# --8<-- [end:device_convolution]


def convolve(image, kernel, device: str = "auto", mode: str = "full"):
    """Dispatch to the host or device convolution by device name."""
    if resolve_device(device) == "cuda":
        return convolve_device(image, kernel, mode=mode)
    return convolve_host(image, kernel, mode=mode)


# --8<-- [start:transfer_compute_transferback]
def convolve_with_transfers(image: np.ndarray, kernel: np.ndarray, mode: str = "full") -> np.ndarray:
    """Host arrays in, host array out, with the convolution done on the GPU.

    Timing this function (rather than convolve_device) charges the GPU for
    the host->device and device->host copies, which is the fair comparison
    against convolve_host.
    """
    image_gpu = to_device(image)
    kernel_gpu = to_device(kernel)
    result_gpu = convolve_device(image_gpu, kernel_gpu, mode=mode)
    return to_host(result_gpu)
# --8<-- [end:transfer_compute_transferback]


# =============================================================================
# Validation
# =============================================================================

# --8<-- [start:validate_results]
def results_agree(host_result, device_result, rtol: float = 1e-5, atol: float = 1e-8) -> bool:
    """True when both results hold the same numbers (to within allclose tolerance).

    The device result is copied back to the host first: np.allclose refuses
    to mix NumPy and CuPy arrays.
    """
    host_result = to_host(host_result)
    device_result = to_host(device_result)
    if host_result.shape != device_result.shape:
        return False
    return bool(np.allclose(host_result, device_result, rtol=rtol, atol=atol))
# --8<-- [end:validate_results]


# =============================================================================
# 1D convolution and NumPy dispatch
# =============================================================================

# --8<-- [start:diagonal_convolution]
def diagonal_convolution(image, kernel):
    """np.convolve of the image diagonal with the kernel diagonal.

    When both arguments are CuPy arrays, np.diagonal and np.convolve hand the
    work to cupy.diagonal and cupy.convolve (NumPy's __array_function__
    protocol), so the computation runs on the GPU and a CuPy array comes back.
    """
    return np.convolve(np.diagonal(image), np.diagonal(kernel))
# --8<-- [end:diagonal_convolution]


def mixed_type_error(func: Callable[..., Any], *args: Any) -> str | None:
    """Call func(*args) and return the TypeError message it raises, if any.

    Used by the lesson's "read the error" challenges: SciPy given CuPy arrays,
    and cupyx given NumPy arrays.
    """
    try:
        func(*args)
    except TypeError as exc:
        return str(exc)
    return None


# =============================================================================
# Verification
# =============================================================================

def _cuda_available() -> bool:
    return resolve_device("auto") == "cuda"


def verify_deltas():
    """Verify the deltas image layout."""
    print("Verifying deltas image...")

    deltas = make_deltas()
    assert deltas.shape == (2048, 2048), f"Expected (2048, 2048), got {deltas.shape}"
    assert deltas.dtype == np.float64, f"Expected float64, got {deltas.dtype}"
    n_ones = int(deltas.sum())
    assert n_ones == 128 * 128, f"Expected {128 * 128} ones, got {n_ones}"
    assert deltas[8, 8] == 1 and deltas[24, 24] == 1, "Ones missing on the grid"
    assert deltas[0, 0] == 0 and deltas[8, 9] == 0, "Unexpected non-zero off the grid"

    print(f"  shape={deltas.shape}, dtype={deltas.dtype}, ones={n_ones}")
    print("  [PASS] Deltas image OK")


def verify_gaussian_kernel():
    """Verify the Gaussian kernel is centred, symmetric and peaks at 1."""
    print("Verifying Gaussian kernel...")

    gauss = make_gaussian_kernel()
    assert gauss.shape == (15, 15), f"Expected (15, 15), got {gauss.shape}"
    assert np.isclose(gauss[7, 7], 1.0), f"Centre value {gauss[7, 7]} != 1"
    assert gauss.argmax() == 7 * 15 + 7, "Maximum is not at the centre"
    assert np.allclose(gauss, gauss.T), "Kernel is not symmetric"
    assert np.allclose(gauss, gauss[::-1, ::-1]), "Kernel is not point symmetric"

    print(f"  shape={gauss.shape}, centre={gauss[7, 7]:.3f}, corner={gauss[0, 0]:.2e}")
    print("  [PASS] Gaussian kernel OK")


def verify_host_convolution():
    """Verify SciPy convolution of a single delta reproduces the kernel."""
    print("Verifying host convolution...")

    image = np.zeros((32, 32))
    image[10, 12] = 1
    gauss = make_gaussian_kernel()
    image_before = image.copy()
    gauss_before = gauss.copy()

    out = convolve_host(image, gauss)
    assert out.shape == (32 + 14, 32 + 14), f"Full-mode shape wrong: {out.shape}"
    # A delta at (r, c) places the kernel's top-left corner at (r, c) in full mode
    patch = out[10:25, 12:27]
    assert np.allclose(patch, gauss), "Delta did not reproduce the kernel"
    assert np.isclose(out.sum(), gauss.sum()), "Convolution changed the total mass"
    assert np.array_equal(image, image_before), "Input image was modified"
    assert np.array_equal(gauss, gauss_before), "Kernel was modified"

    same = convolve_host(image, gauss, mode="same")
    assert same.shape == image.shape, f"Same-mode shape wrong: {same.shape}"

    print(f"  full: {image.shape} * {gauss.shape} -> {out.shape}")
    print(f"  same: {image.shape} * {gauss.shape} -> {same.shape}")
    print("  [PASS] Host convolution OK")


def verify_device_agreement():
    """Verify GPU and CPU convolutions give the same numbers."""
    print("Verifying device convolution agrees with host...")

    if not _cuda_available():
        print("  [SKIP] No CUDA device available")
        return

    import cupy as cp

    deltas = make_deltas(size=256)
    gauss = make_gaussian_kernel()

    host = convolve_host(deltas, gauss)
    device = convolve_device(to_device(deltas), to_device(gauss))
    assert isinstance(device, cp.ndarray), f"Expected cupy.ndarray, got {type(device)}"
    assert results_agree(host, device), "Host and device results differ"

    transferred = convolve_with_transfers(deltas, gauss)
    assert isinstance(transferred, np.ndarray), "convolve_with_transfers must return NumPy"
    assert results_agree(host, transferred), "Transfer round trip changed the result"

    print(f"  host={type(host).__module__}.{type(host).__name__}, "
          f"device={type(device).__module__}.{type(device).__name__}")
    print("  [PASS] Device convolution agrees with host")


def verify_mixed_type_errors():
    """Verify mixing host and device arrays fails with a TypeError."""
    print("Verifying host/device type errors...")

    if not _cuda_available():
        print("  [SKIP] No CUDA device available")
        return

    deltas = make_deltas(size=64)
    gauss = make_gaussian_kernel()

    cpu_on_gpu = mixed_type_error(convolve2d_cpu, to_device(deltas), to_device(gauss))
    assert cpu_on_gpu is not None, "SciPy accepted CuPy arrays"
    gpu_on_cpu = mixed_type_error(convolve_device, deltas, gauss)
    assert gpu_on_cpu is not None, "cupyx accepted NumPy arrays"

    print(f"  scipy on cupy arrays: TypeError: {cpu_on_gpu.splitlines()[0]}")
    print(f"  cupyx on numpy arrays: TypeError: {gpu_on_cpu.splitlines()[0]}")
    print("  [PASS] Mixed host/device calls rejected")


def verify_diagonal_dispatch():
    """Verify np.convolve on diagonals and its dispatch to CuPy."""
    print("Verifying 1D diagonal convolution...")

    deltas = make_deltas(size=256)
    gauss = make_gaussian_kernel()
    out = diagonal_convolution(deltas, gauss)
    assert isinstance(out, np.ndarray), f"Expected numpy.ndarray, got {type(out)}"
    assert out.shape == (256 + 15 - 1,), f"Unexpected shape {out.shape}"
    print(f"  host: {out.shape}, sum={out.sum():.4f}")

    if not _cuda_available():
        print("  [SKIP] No CUDA device available for dispatch check")
        print("  [PASS] Diagonal convolution OK (host only)")
        return

    import cupy as cp

    out_gpu = diagonal_convolution(to_device(deltas), to_device(gauss))
    assert isinstance(out_gpu, cp.ndarray), f"np.convolve did not dispatch: {type(out_gpu)}"
    assert results_agree(out, out_gpu), "1D host and device results differ"
    print(f"  device: {type(out_gpu).__module__}.{type(out_gpu).__name__}")
    print("  [PASS] Diagonal convolution OK (dispatches to CuPy)")


def run_verification():
    """Run all verification checks."""
    print("=" * 60)
    print("GPU Convolution -- Verification")
    print("=" * 60)

    verify_deltas()
    print()
    verify_gaussian_kernel()
    print()
    verify_host_convolution()
    print()
    verify_device_agreement()
    print()
    verify_mixed_type_errors()
    print()
    verify_diagonal_dispatch()

    print()
    print("=" * 60)
    print("[ALL PASS] GPU convolution verified")
    print("=" * 60)


# =============================================================================
# Demo
# =============================================================================

def run_demo(device: str = "auto", size: int = 2048):
    """Walk through the lesson's steps on the selected device."""
    from scripts.labs.timing import format_timing, speedup, time_call, time_host

    device = resolve_device(device)

    print("=" * 60)
    print(f"GPU Convolution -- Demo (device={device}, size={size})")
    print("=" * 60)

    deltas = make_deltas(size=size)
    gauss = make_gaussian_kernel()
    print(f"\nDeltas image: shape={deltas.shape}, ones={int(deltas.sum())}")
    print(f"Gaussian kernel: shape={gauss.shape}, centre={gauss[7, 7]:.3f}")
    print("Top-left corner of the deltas image (1 = star):")
    for row in deltas[0:17, 0:17].astype(int):
        print("  " + "".join("#" if v else "." for v in row))

    print("\nConvolving on the host (scipy.signal.convolve2d)...")
    host_timing = time_host(convolve_host, (deltas, gauss), n_repeat=1, n_warmup=0,
                            name="convolve2d")
    print(f"  {format_timing(host_timing)}")
    host_result = convolve_host(deltas, gauss)

    if device != "cuda":
        print("\nNo CUDA device: skipping the device half of the demo.")
        print()
        print("=" * 60)
        print("Demo complete (host only).")
        print("=" * 60)
        return

    deltas_gpu = to_device(deltas)
    gauss_gpu = to_device(gauss)
    print(f"\nCopied to device: {type(deltas_gpu).__module__}.{type(deltas_gpu).__name__}")

    device_timing = time_call(convolve_device, (deltas_gpu, gauss_gpu), device="cuda",
                              n_repeat=10, name="convolve2d")
    transfer_timing = time_call(convolve_with_transfers, (deltas, gauss), device="cuda",
                                n_repeat=10, name="convolve_with_transfers")
    print(f"  {format_timing(device_timing)}")
    print(f"  {format_timing(transfer_timing)}")
    print(f"\nSpeedup (compute only):     {speedup(host_timing, device_timing):.1f}x")
    print(f"Speedup (incl. transfers):  {speedup(host_timing, transfer_timing):.1f}x")

    device_result = convolve_device(deltas_gpu, gauss_gpu)
    print(f"\nResults agree (np.allclose): {results_agree(host_result, device_result)}")

    print("\nReading the errors from mixing host and device arrays:")
    msg = mixed_type_error(convolve2d_cpu, deltas_gpu, gauss_gpu)
    print(f"  scipy on cupy arrays -> TypeError: {msg}")
    msg = mixed_type_error(convolve_device, deltas, gauss)
    print(f"  cupyx on numpy arrays -> TypeError: {msg}")

    out_gpu = diagonal_convolution(deltas_gpu, gauss_gpu)
    print(f"\nnp.convolve on CuPy diagonals returned {type(out_gpu).__module__}."
          f"{type(out_gpu).__name__} of shape {out_gpu.shape}")

    print()
    print("=" * 60)
    print("Demo complete. Same call, different array library: the location")
    print("of the data decides which hardware does the work.")
    print("=" * 60)


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description="Convolution on host and device (NumPy/SciPy vs CuPy)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  --verify              Run sanity checks (device checks skip without a GPU)
  --demo --device auto  Walk through the lesson on the best available device
        """
    )
    parser.add_argument("--verify", action="store_true", help="Run verification checks")
    parser.add_argument("--demo", action="store_true", help="Run demonstration")
    parser.add_argument("--device", choices=list(DEVICES), default="auto",
                        help="Where the demo convolves (default: auto)")
    parser.add_argument("--size", type=int, default=2048,
                        help="Side length of the deltas image for the demo")
    args = parser.parse_args()

    if args.verify:
        run_verification()
    elif args.demo:
        run_demo(device=args.device, size=args.size)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
