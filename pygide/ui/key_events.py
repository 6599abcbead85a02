"""QKeyEvent -> canonical chord text (``"Ctrl+X"``) for the sequence matcher."""

from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtGui import QKeyEvent, QKeySequence

from pygide.core.keybindings import canonicalize_chord_text

_MODIFIER_KEYS = {
    int(Qt.Key_Control),
    int(Qt.Key_Shift),
    int(Qt.Key_Alt),
    int(Qt.Key_Meta),
    int(Qt.Key_unknown),
}


def _manual_chord_from_event(event: QKeyEvent, mods) -> str:
    token = QKeySequence(int(event.key())).toString(QKeySequence.PortableText).strip()
    if not token:
        token = str(event.text() or "").strip()
    if not token:
        return ""
    parts: list[str] = []
    if mods & Qt.ControlModifier:
        parts.append("Ctrl")
    if mods & Qt.AltModifier:
        parts.append("Alt")
    if mods & Qt.ShiftModifier:
        parts.append("Shift")
    if mods & Qt.MetaModifier:
        parts.append("Meta")
    parts.append(token)
    return "+".join(parts)


def event_to_chord_text(event: QKeyEvent) -> str:
    if int(event.key()) in _MODIFIER_KEYS:
        return ""
    mods = event.modifiers() & (Qt.ControlModifier | Qt.AltModifier | Qt.ShiftModifier | Qt.MetaModifier)
    raw = QKeySequence(event.keyCombination()).toString(QKeySequence.PortableText).strip()
    manual_raw = _manual_chord_from_event(event, mods)
    if manual_raw and manual_raw.count("+") > raw.count("+"):
        raw = manual_raw
    if not raw:
        raw = manual_raw
    return canonicalize_chord_text(raw)
