# utils/background.py
from __future__ import annotations
import threading
from concurrent.futures import ThreadPoolExecutor

# Shared pool for fanning out per-artist searches
_executor: ThreadPoolExecutor | None = None
_executor_size = 0
_lock = threading.Lock()

def get_executor(max_workers: int) -> ThreadPoolExecutor:
    global _executor, _executor_size
    with _lock:
        if _executor is None or _executor_size < max_workers:
            if _executor is not None:
                _executor.shutdown(wait=False)
            _executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vibelist-search")
            _executor_size = max_workers
        return _executor

def map_in_pool(func, items, max_workers: int) -> list:
    """Run func over items on the shared pool, results in input order."""
    return list(get_executor(max_workers).map(func, items))
