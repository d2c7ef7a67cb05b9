"""Bounded thread pool for blocking I/O and CPU-bound archive decoding."""

import asyncio
import atexit
import functools
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# Thread pool size - configurable via environment
_max_workers = int(os.environ.get("DATASET_VIEWER_WORKERS", "8"))
_executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="dataset-viewer")

# Ensure executor is cleaned up on process exit
atexit.register(_executor.shutdown, wait=False)


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run ``func`` in the shared pool and await its result.

    Used for Central Directory walks, inflate and tar decoding so a single
    large archive never stalls the event loop.
    """
    loop = asyncio.get_running_loop()
    if kwargs:
        func = functools.partial(func, **kwargs)
    return await loop.run_in_executor(_executor, func, *args)
