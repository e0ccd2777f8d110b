import sys
from pathlib import Path

import pytest

# Project root on sys.path so `scripts.labs` imports resolve
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from scripts.labs.gpu_convolution import resolve_device  # noqa: E402

HAS_CUDA = resolve_device("auto") == "cuda"


@pytest.hookimpl(tryfirst=True)
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "cuda: needs CuPy and a visible CUDA device"
    )


def pytest_collection_modifyitems(config, items):
    if HAS_CUDA:
        return
    skip_cuda = pytest.mark.skip(reason="no CUDA device visible to CuPy")
    for item in items:
        if "cuda" in item.keywords:
            item.add_marker(skip_cuda)


@pytest.fixture
def deltas_small():
    from scripts.labs.gpu_convolution import make_deltas

    return make_deltas(size=64)


@pytest.fixture
def gauss():
    from scripts.labs.gpu_convolution import make_gaussian_kernel

    return make_gaussian_kernel()
