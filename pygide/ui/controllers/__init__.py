"""Qt-aware controllers used by the main window."""

from .execution_controller import ExecutionController, editor_state_from_text_edit

__all__ = [
    "ExecutionController",
    "editor_state_from_text_edit",
]
