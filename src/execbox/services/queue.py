from __future__ import annotations
import queue
import uuid
from typing import List, Protocol


class JobQueue(Protocol):
    def send(self, body: str) -> str: ...
    def receive_batch(self, max_messages: int, wait_s: float = 0.0) -> List[str]: ...


class MemoryQueue:
    """In-process queue of raw descriptor messages (single host)."""

    def __init__(self):
        self._q: "queue.Queue[str]" = queue.Queue()

    def send(self, body: str) -> str:
        self._q.put(body)
        return uuid.uuid4().hex

    def receive_batch(self, max_messages: int, wait_s: float = 0.0) -> List[str]:
        out: List[str] = []
        try:
            # block only for the first message
            out.append(self._q.get(timeout=wait_s) if wait_s > 0 else self._q.get_nowait())
        except queue.Empty:
            return out
        while len(out) < max_messages:
            try:
                out.append(self._q.get_nowait())
            except queue.Empty:
                break
        return out

    def __len__(self) -> int:
        return self._q.qsize()
