"""
Console view for the translation workflow.

Renders WorkflowState snapshots as text and reads user intents from a
line-oriented command stream.
"""

import logging
import shlex
import sys
from typing import Any, Dict, Optional, TextIO

from inscription_reader.core.error_formatting import ACTION_SAVE_AGAIN, ACTION_START_OVER
from inscription_reader.models import WorkflowState

HELP_TEXT = """Commands:
  open <path>              select the next photograph
  params <scale> <noise>   set scale (10-100) and noise divisor (0.1-10.0)
  preprocess               preprocess the selected photograph
  translate                translate and add it to the session
  complete                 finish the session and save the document
  save                     save a finished document again after a failed save
  reset                    discard the session
  status                   show the current state
  help                     show this text
  quit                     leave"""


class ConsoleView:
    """Text observer for SessionController.

    Prints state transitions, busy indicators, transliterations, errors
    with suggestions and delivered document paths.
    """

    def __init__(self, controller, stream: Optional[TextIO] = None):
        """Initialize view and subscribe to controller signals.

        Args:
            controller: SessionController handling all logic
            stream: Output stream (defaults to stdout)
        """
        self._controller = controller
        self._stream = stream or sys.stdout
        self._last: Optional[WorkflowState] = None
        self._logger = logging.getLogger(__name__)

        controller.state_changed.connect(self._on_state_changed)
        controller.busy_changed.connect(self._on_busy_changed)
        controller.error_occurred.connect(self._on_error)
        controller.document_ready.connect(self._on_document_ready)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _write(self, text: str) -> None:
        self._stream.write(text + "\n")
        self._stream.flush()

    def _on_state_changed(self, state: WorkflowState) -> None:
        previous = self._last
        self._last = state

        if previous is None or previous.session_id != state.session_id:
            if state.session_id:
                self._write(f"Session {state.session_id} started")
            elif previous is not None and previous.session_id:
                self._write("Session closed")

        if previous is None or previous.image_phase != state.image_phase:
            self._logger.debug(f"Image phase: {state.image_phase.value}")

        if previous is not None and state.image_count > previous.image_count:
            self._write(f"--- Image {state.image_count} ---")
            for line in state.session.results[-1].lines:
                self._write(f"  {line}")
            self._write(f"Merged transliteration: {len(state.merged_translation)} line(s) "
                        f"from {state.image_count} image(s)")

    def _on_busy_changed(self, operation: str, busy: bool) -> None:
        if busy:
            self._write(f"[{operation}] working...")
        else:
            self._logger.debug(f"[{operation}] done")

    def _on_error(self, error: Dict[str, Any]) -> None:
        self._write(f"{error['title']}: {error['message']}")
        for suggestion in error.get('suggestions', []):
            self._write(f"  - {suggestion}")

        action = error.get('action')
        if action == ACTION_SAVE_AGAIN and self._controller.has_pending_document:
            self._write("Type 'save' to try saving the finished document again")
        elif action == ACTION_START_OVER:
            self._write("Type 'open <path>' to begin a new session")

    def _on_document_ready(self, path: str) -> None:
        self._write(f"Document saved to {path}")

    def show_status(self) -> None:
        """Print a summary of the current state."""
        state = self._controller.state
        self._write(f"Mode: {self._controller.mode.value}")
        self._write(f"Session: {state.session_id or '-'} ({state.session_phase.value}), "
                    f"{state.image_count} image(s)")
        self._write(f"Image: {state.image_phase.value}"
                    + (f" [{state.selected_file.name}]" if state.selected_file else ""))
        self._write(f"Parameters: scale={state.parameters.scale}%, "
                    f"noise divisor={state.parameters.noise_divisor}"
                    + (" (changed since preprocessing)" if state.preprocess_stale else ""))
        if state.current_translation:
            self._write("Current image:")
            for line in state.current_translation:
                self._write(f"  {line}")
        if state.merged_translation:
            self._write("Merged:")
            for line in state.merged_translation:
                self._write(f"  {line}")

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def handle_command(self, line: str) -> bool:
        """Dispatch one command line to the controller.

        Returns:
            False when the user asked to quit, True otherwise
        """
        try:
            words = shlex.split(line)
        except ValueError as e:
            self._write(f"Could not parse command: {e}")
            return True
        if not words:
            return True

        command, args = words[0].lower(), words[1:]

        if command in ('quit', 'exit'):
            return False
        if command == 'help':
            self._write(HELP_TEXT)
            return True
        if command == 'status':
            self.show_status()
            return True

        if command == 'open' and len(args) == 1:
            success, message = self._controller.select_file(args[0])
        elif command == 'params' and len(args) == 2:
            success, message = self._controller.set_parameters(args[0], args[1])
        elif command == 'preprocess' and not args:
            success, message = self._controller.preprocess()
        elif command == 'translate' and not args:
            success, message = self._controller.translate()
        elif command == 'complete' and not args:
            success, message = self._controller.complete_session()
        elif command == 'save' and not args:
            success, message = self._controller.retry_delivery()
        elif command == 'reset' and not args:
            success, message = self._controller.reset()
        else:
            self._write(f"Unknown command: {line.strip()} (type 'help')")
            return True

        # Failures were already rendered through error_occurred
        if success:
            self._write(message)
        return True

    def run(self, input_stream: Optional[TextIO] = None) -> int:
        """Read commands until 'quit' or end of input."""
        input_stream = input_stream or sys.stdin
        self._write(HELP_TEXT)
        for line in input_stream:
            if not self.handle_command(line):
                break
        return 0
