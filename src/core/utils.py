"""
Small shared utilities.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds.

    ``elapsed_ms`` is also readable while the block is still running via
    ``result["elapsed"]()``.
    """
    start = time.perf_counter()
    result: dict = {"elapsed": lambda: int((time.perf_counter() - start) * 1000)}
    try:
        yield result
    finally:
        result["elapsed_ms"] = result["elapsed"]()
