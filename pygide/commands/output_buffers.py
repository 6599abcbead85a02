"""Named output sinks for command processes.

One buffer per command name, created lazily and kept for the session. The
store also hands out single-writer ownership per name so two runs of the
same command never interleave their output in one buffer.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal


class OutputBuffer(QObject):
    textAppended = Signal(str)
    cleared = Signal()
    settledChanged = Signal(bool)

    def __init__(self, name: str, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.setObjectName(f"{name}-buf")
        self.name = name
        # Command output is never written back to disk.
        self.autosave = False
        self._chunks: list[str] = []
        self._settled = True

    def text(self) -> str:
        if len(self._chunks) > 1:
            self._chunks = ["".join(self._chunks)]
        return self._chunks[0] if self._chunks else ""

    def lines(self) -> list[str]:
        return self.text().splitlines()

    def is_empty(self) -> bool:
        return not any(self._chunks)

    def append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self.textAppended.emit(text)

    def append_line(self, text: str) -> None:
        current = self.text()
        prefix = "\n" if current and not current.endswith("\n") else ""
        self.append(f"{prefix}{text}\n")

    def clear(self) -> None:
        self._chunks.clear()
        self.cleared.emit()

    def is_settled(self) -> bool:
        return self._settled

    def mark_active(self) -> None:
        if not self._settled:
            return
        self._settled = False
        self.settledChanged.emit(False)

    def mark_settled(self) -> None:
        if self._settled:
            return
        self._settled = True
        self.settledChanged.emit(True)


@dataclass
class _BufferLease:
    owner: Optional[object] = None
    waiting: deque[tuple[object, Callable[[OutputBuffer], None]]] = field(default_factory=deque)


class OutputBufferStore(QObject):
    bufferCreated = Signal(str)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._buffers: dict[str, OutputBuffer] = {}
        self._leases: dict[str, _BufferLease] = {}

    def get_or_create(self, name: str, clear_if_exists: bool = False) -> tuple[OutputBuffer, bool]:
        buf = self._buffers.get(name)
        if buf is not None:
            if clear_if_exists:
                buf.clear()
            return buf, False
        buf = OutputBuffer(name, self)
        self._buffers[name] = buf
        self.bufferCreated.emit(name)
        return buf, True

    def get(self, name: str) -> Optional[OutputBuffer]:
        return self._buffers.get(name)

    def names(self) -> list[str]:
        return list(self._buffers)

    # ---------- Single-writer ownership ----------

    def owner_of(self, name: str) -> Optional[object]:
        lease = self._leases.get(name)
        return lease.owner if lease else None

    def pending_count(self, name: str) -> int:
        lease = self._leases.get(name)
        return len(lease.waiting) if lease else 0

    def acquire(self, name: str, owner: object, on_granted: Callable[[OutputBuffer], None]) -> bool:
        """Grant the buffer for ``name`` to ``owner`` now, or queue the request.

        Returns True when granted immediately. Queued requests are granted in
        FIFO order as earlier owners call :meth:`release`.
        """
        buf, _created = self.get_or_create(name)
        lease = self._leases.setdefault(name, _BufferLease())
        if lease.owner is None:
            lease.owner = owner
            on_granted(buf)
            return True
        if lease.owner is owner:
            on_granted(buf)
            return True
        lease.waiting.append((owner, on_granted))
        return False

    def release(self, name: str, owner: object) -> None:
        lease = self._leases.get(name)
        if lease is None:
            return
        if lease.owner is not owner:
            # Owner gave up before being granted.
            lease.waiting = deque(item for item in lease.waiting if item[0] is not owner)
            return
        lease.owner = None
        if not lease.waiting:
            self._leases.pop(name, None)
            return
        next_owner, on_granted = lease.waiting.popleft()
        lease.owner = next_owner
        on_granted(self._buffers[name])
