"""Key functions, default chord sequences, and the two-key sequence matcher."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from PySide6.QtCore import QObject, QTimer, Signal


class KeyFunction(Enum):
    EXEC_COMMAND = "action.exec_command"
    BUILD = "action.build"
    RUN = "action.run"
    COMMIT = "action.commit"
    SAVE = "action.save"
    KILL_ACTIVE = "action.kill_active"


class SequenceState(Enum):
    IDLE = "idle"
    AWAITING_SECOND_KEY = "awaiting_second_key"


@dataclass(frozen=True, slots=True)
class KeybindingAction:
    function: KeyFunction
    action_name: str
    default_sequence: tuple[str, ...]


KEYBINDING_ACTIONS: tuple[KeybindingAction, ...] = (
    KeybindingAction(KeyFunction.EXEC_COMMAND, "Execute Command", ("Ctrl+X", "Ctrl+E")),
    KeybindingAction(KeyFunction.BUILD, "Build Project", ("Ctrl+X", "Ctrl+B")),
    KeybindingAction(KeyFunction.RUN, "Run Project", ("Ctrl+X", "Ctrl+R")),
    KeybindingAction(KeyFunction.COMMIT, "Commit", ("Ctrl+X", "Ctrl+V")),
    KeybindingAction(KeyFunction.SAVE, "Save Active File", ("Ctrl+S",)),
    KeybindingAction(KeyFunction.KILL_ACTIVE, "Kill Active Command", ("Ctrl+X", "Ctrl+K")),
)


def default_keybindings() -> dict[str, list[str]]:
    return {action.function.value: list(action.default_sequence) for action in KEYBINDING_ACTIONS}


def canonicalize_chord_text(text: str) -> str:
    """``"shift+ctrl+b"`` -> ``"Ctrl+Shift+B"``; modifier order is fixed."""
    parts = [part.strip() for part in str(text or "").strip().split("+") if part.strip()]
    if not parts:
        return ""
    mods = {"Ctrl": False, "Alt": False, "Shift": False, "Meta": False}
    key_token = ""
    for part in parts:
        low = part.lower()
        if low in {"ctrl", "control"}:
            mods["Ctrl"] = True
        elif low == "alt":
            mods["Alt"] = True
        elif low == "shift":
            mods["Shift"] = True
        elif low in {"meta", "cmd", "command", "super", "win"}:
            mods["Meta"] = True
        else:
            key_token = part
    if not key_token:
        return ""
    if len(key_token) == 1 and key_token.isalpha():
        key_token = key_token.upper()
    elif key_token.lower() in {"esc", "escape"}:
        key_token = "Escape"
    return "+".join([name for name, on in mods.items() if on] + [key_token])


def normalize_sequence(value: Any) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []
    out = [canonicalize_chord_text(str(item)) for item in value]
    return [chord for chord in out if chord][:2]


def normalize_keybindings(raw: Any) -> dict[str, list[str]]:
    merged = default_keybindings()
    if not isinstance(raw, Mapping):
        return merged
    for action_id, value in raw.items():
        key = str(action_id or "").strip()
        if key not in merged:
            continue
        sequence = normalize_sequence(value)
        if sequence:
            merged[key] = sequence
    return merged


class KeySequenceMatcher(QObject):
    """Maps key chords to functions, including two-key sequences.

    ``Idle`` + a prefix chord moves to ``AwaitingSecondKey``. The next chord
    either completes a binding, is ``Escape`` (abort), or is unbound; all
    three return to ``Idle``. A pending prefix also expires after
    ``timeout_ms`` (0 disables the timeout).
    """

    statusChanged = Signal(str)

    def __init__(
        self,
        bindings: Mapping[str, list[str]] | None = None,
        *,
        timeout_ms: int = 1500,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._single: dict[str, KeyFunction] = {}
        self._double: dict[tuple[str, str], KeyFunction] = {}
        self._state = SequenceState.IDLE
        self._first_chord = ""
        self._timeout_ms = max(0, int(timeout_ms))
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._on_timeout)
        self.set_bindings(bindings)

    @property
    def state(self) -> SequenceState:
        return self._state

    @property
    def first_chord(self) -> str:
        return self._first_chord

    def set_bindings(self, bindings: Mapping[str, list[str]] | None) -> None:
        self.reset()
        self._single.clear()
        self._double.clear()
        by_id = {function.value: function for function in KeyFunction}
        for action_id, sequence in normalize_keybindings(bindings).items():
            function = by_id[action_id]
            if len(sequence) == 1:
                self._single[sequence[0]] = function
            elif len(sequence) == 2:
                self._double[(sequence[0], sequence[1])] = function

    def is_prefix(self, chord: str) -> bool:
        return any(first == chord for first, _second in self._double)

    def reset(self) -> None:
        self._timer.stop()
        self._state = SequenceState.IDLE
        self._first_chord = ""

    def feed(self, chord_text: str) -> tuple[bool, Optional[KeyFunction]]:
        """Returns ``(consumed, function)`` for one chord."""
        chord = canonicalize_chord_text(chord_text)
        if not chord:
            return False, None

        if self._state == SequenceState.AWAITING_SECOND_KEY:
            first = self._first_chord
            self.reset()
            function = self._double.get((first, chord))
            if function is None and chord == "Escape":
                self.statusChanged.emit(f"{first} {chord} -- aborted")
                return True, None
            self.statusChanged.emit(f"{first} {chord}")
            return function is not None, function

        if self.is_prefix(chord):
            self._state = SequenceState.AWAITING_SECOND_KEY
            self._first_chord = chord
            if self._timeout_ms > 0:
                self._timer.start(self._timeout_ms)
            self.statusChanged.emit(chord)
            return True, None

        function = self._single.get(chord)
        return function is not None, function

    def _on_timeout(self) -> None:
        if self._state != SequenceState.AWAITING_SECOND_KEY:
            return
        first = self._first_chord
        self.reset()
        self.statusChanged.emit(f"{first} -- timed out")
