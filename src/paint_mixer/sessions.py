from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor

from .sampler import ImageSampler

log = logging.getLogger(__name__)


class SessionRegistry:
    """Picker sessions keyed by id; the oldest is dropped once `max_sessions` is hit."""

    def __init__(self, max_sessions: int = 32, decode_workers: int = 2) -> None:
        self.max_sessions = max(1, int(max_sessions))
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(decode_workers)), thread_name_prefix="image-decode"
        )
        self._samplers: OrderedDict[str, ImageSampler] = OrderedDict()
        self._lock = threading.Lock()

    def create(self) -> tuple[str, ImageSampler]:
        sid = uuid.uuid4().hex
        sampler = ImageSampler(
            on_commit=lambda hex_code: log.info("Session %s committed %s", sid, hex_code),
            on_cancel=lambda: log.info("Session %s dismissed without a colour", sid),
            executor=self._executor,
        )
        with self._lock:
            self._samplers[sid] = sampler
            evicted = []
            while len(self._samplers) > self.max_sessions:
                evicted.append(self._samplers.popitem(last=False))
        for old_sid, old in evicted:
            log.info("Evicting picker session %s", old_sid)
            old.close()
        return sid, sampler

    def get(self, sid: str) -> ImageSampler:
        with self._lock:
            return self._samplers[sid]

    def close(self, sid: str) -> bool:
        """Remove a session; True when that fired a cancellation."""
        with self._lock:
            sampler = self._samplers.pop(sid)
        cancelled = sampler.dismiss()
        sampler.close()
        return cancelled

    def __len__(self) -> int:
        return len(self._samplers)

    def shutdown(self) -> None:
        with self._lock:
            samplers = list(self._samplers.values())
            self._samplers.clear()
        for s in samplers:
            s.close()
        self._executor.shutdown(wait=True)
