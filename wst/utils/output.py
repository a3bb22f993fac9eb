"""Atomic file write helpers used by the alert report writer."""
from __future__ import annotations

import os
import time


def atomic_replace(src_path: str, dst_path: str, retries: int = 20, delay: float = 0.05) -> None:
    """Atomically replace dst with src, retrying on PermissionError (Windows file locks).

    The final attempt raises.
    """
    for _ in range(max(1, int(retries)) - 1):
        try:
            os.replace(src_path, dst_path)
            return
        except PermissionError:
            time.sleep(delay)
    # Last attempt (raise if fails)
    os.replace(src_path, dst_path)


def atomic_write_text(dst_path: str, text: str, *, retries: int = 20, delay: float = 0.05) -> None:
    """Write text to a file atomically.

    - Writes to <dst>.tmp, flushes and fsyncs, then replaces dst.
    - Creates parent directories when missing.
    """
    parent = os.path.dirname(dst_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    tmp = dst_path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    atomic_replace(tmp, dst_path, retries=retries, delay=delay)


__all__ = ["atomic_replace", "atomic_write_text"]
