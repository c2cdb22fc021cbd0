"""
Per-upload progress channels.
Each upload gets its own ProgressChannel (thread-safe, percent never decreases, cancellable),
kept in a ProgressRegistry keyed by upload id. There is no process-wide emitter.
Finished channels are dropped once their stream has ended, or after FINISHED_TTL seconds.
"""
import logging
import threading
import time
import uuid
from typing import Dict, Optional

logger = logging.getLogger(__name__)

FINISHED_TTL = 600.0


class ProgressChannel:
    def __init__(self, upload_id: str):
        self.upload_id = upload_id
        self._lock = threading.Lock()
        self._percent = 0
        self._done = False
        self._cancelled = False
        self._finished_at: Optional[float] = None

    def publish(self, percent: float) -> int:
        """Record progress (clamped to 0-100). Lower values than already published are ignored."""
        with self._lock:
            value = int(max(0, min(100, round(percent))))
            if value > self._percent:
                self._percent = value
            return self._percent

    def close(self) -> None:
        """Mark the upload finished."""
        with self._lock:
            if not self._cancelled:
                self._percent = 100
            self._finish()

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            self._finish()
        logger.info("upload_cancelled: upload_id=%s", self.upload_id)

    def _finish(self) -> None:
        self._done = True
        if self._finished_at is None:
            self._finished_at = time.monotonic()

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    @property
    def done(self) -> bool:
        with self._lock:
            return self._done

    def finished_before(self, deadline: float) -> bool:
        with self._lock:
            return self._finished_at is not None and self._finished_at <= deadline

    def snapshot(self) -> dict:
        with self._lock:
            return {"percent": self._percent, "done": self._done, "cancelled": self._cancelled}


class ProgressRegistry:
    def __init__(self, ttl: float = FINISHED_TTL):
        self._lock = threading.Lock()
        self._channels: Dict[str, ProgressChannel] = {}
        self.ttl = ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def create(self, upload_id: Optional[str] = None) -> ProgressChannel:
        """New channel; an existing channel with the same id is returned unchanged if still running."""
        upload_id = (upload_id or "").strip() or uuid.uuid4().hex
        with self._lock:
            self._prune()
            existing = self._channels.get(upload_id)
            if existing is not None and not existing.done:
                return existing
            channel = ProgressChannel(upload_id)
            self._channels[upload_id] = channel
            return channel

    def _prune(self) -> None:
        deadline = time.monotonic() - self.ttl
        expired = [uid for uid, ch in self._channels.items() if ch.finished_before(deadline)]
        for uid in expired:
            del self._channels[uid]
        if expired:
            logger.info("progress_pruned: channels=%s", len(expired))

    def get(self, upload_id: str) -> Optional[ProgressChannel]:
        with self._lock:
            return self._channels.get(upload_id)

    def discard(self, channel: ProgressChannel) -> None:
        """Drop a finished channel; a newer channel under the same id is left alone."""
        if not channel.done:
            return
        with self._lock:
            if self._channels.get(channel.upload_id) is channel:
                del self._channels[channel.upload_id]

    def cancel(self, upload_id: str) -> bool:
        channel = self.get(upload_id)
        if channel is None or channel.done:
            return False
        channel.cancel()
        return True
