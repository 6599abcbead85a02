from __future__ import annotations

from typing import Iterable


class CommandHistory:
    """Most-recent-last list of distinct command names run from the picker."""

    def __init__(self, names: Iterable[str] = (), *, max_items: int = 30) -> None:
        self.max_items = max(1, int(max_items))
        self._names: list[str] = []
        for name in names:
            self.add(name)

    def __len__(self) -> int:
        return len(self._names)

    def add(self, name: str) -> None:
        text = str(name or "").strip()
        if not text:
            return
        if text in self._names:
            self._names.remove(text)
        self._names.append(text)
        overflow = len(self._names) - self.max_items
        if overflow > 0:
            del self._names[:overflow]

    def last(self) -> str:
        return self._names[-1] if self._names else ""

    def names(self) -> list[str]:
        return list(self._names)
