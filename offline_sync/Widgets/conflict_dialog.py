# conflict_dialog.py
#
# Imports
import asyncio
import json
from typing import Any, Optional
#
# 3rd-party Libraries
from loguru import logger
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Static, TextArea
#
# Local Imports
from offline_sync.Sync.decision_gateway import DecisionGateway
from offline_sync.Sync.exceptions import InvalidDecisionError
from offline_sync.Sync.sync_models import ConflictAnswer, ConflictRequest, parse_conflict_answer
#
########################################################################################################################
#
# Classes:

INVALID_RESOLUTION_MESSAGE = "Invalid conflict resolution"


class ConflictResolutionScreen(ModalScreen[ConflictAnswer]):
    """
    Shows one conflicting record and lets the user keep the server copy, keep the
    local copy, skip it for now, or submit an edited version of the local copy.

    The editor is pre-filled with the local candidate. An edited record that is not
    a JSON object keeps the dialog open.
    """
    BINDINGS = [Binding("escape", "skip_conflict", "Skip")]
    CSS = """
    ConflictResolutionScreen { align: center middle; }
    #conflict-dialog { width: 80%; max-width: 100; height: auto; max-height: 90%; border: thick $primary-background-lighten-2; background: $surface; padding: 1 2; }
    #conflict-title { width: 100%; text-style: bold; margin-bottom: 1; }
    #server-copy { width: 100%; color: $text-muted; margin-bottom: 1; }
    #candidate-editor { width: 100%; height: 12; }
    #conflict-buttons { height: auto; width: 100%; padding-top: 1; align: right middle; }
    #conflict-buttons Button { margin-left: 1; }
    """

    def __init__(self, request: ConflictRequest, name: str | None = None, id: str | None = None,
                 classes: str | None = None) -> None:
        super().__init__(name, id, classes)
        self.request = request

    def compose(self) -> ComposeResult:
        with Vertical(id="conflict-dialog"):
            yield Label(f"Conflict on record '{self.request.record_id}'", id="conflict-title")
            if self.request.remote_candidate is not None:
                server_text = json.dumps(self.request.remote_candidate, indent=2, sort_keys=True)
                yield Static(f"Server copy:\n{server_text}", id="server-copy", markup=False)
            yield TextArea(json.dumps(self.request.candidate, indent=2, sort_keys=True), id="candidate-editor")
            with Horizontal(id="conflict-buttons"):
                yield Button("Use server", variant="primary", id="use-server")
                yield Button("Use local", id="use-client")
                yield Button("Use edited", variant="success", id="use-custom")
                yield Button("Skip", variant="error", id="skip-conflict")

    def on_mount(self) -> None:
        self.query_one("#candidate-editor", TextArea).focus()

    def _edited_answer(self) -> Optional[ConflictAnswer]:
        text = self.query_one("#candidate-editor", TextArea).text
        try:
            edited = json.loads(text)
            if not isinstance(edited, dict):
                raise InvalidDecisionError("Edited record must be a JSON object.", raw_answer=text)
            return parse_conflict_answer(edited)
        except (json.JSONDecodeError, InvalidDecisionError) as e:
            logger.warning(f"Edited record for '{self.request.record_id}' rejected: {e}")
            self.notify(INVALID_RESOLUTION_MESSAGE, severity="error")
            return None

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "use-server":
            self.dismiss(ConflictAnswer.use_server())
        elif button_id == "use-client":
            self.dismiss(ConflictAnswer.use_client())
        elif button_id == "skip-conflict":
            self.action_skip_conflict()
        elif button_id == "use-custom":
            answer = self._edited_answer()
            if answer is not None:
                self.dismiss(answer)

    def action_skip_conflict(self) -> None:
        self.dismiss(ConflictAnswer.skip())


class TextualDecisionGateway(DecisionGateway):
    """Asks the user through a ConflictResolutionScreen pushed onto `app`."""

    def __init__(self, app: App):
        super().__init__()
        self.app = app

    async def _ask(self, request: ConflictRequest) -> Any:
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _on_dismiss(answer: Optional[ConflictAnswer]) -> None:
            if not future.done():
                future.set_result(answer)

        self.app.push_screen(ConflictResolutionScreen(request), callback=_on_dismiss)
        return await future

    async def on_invalid_answer(self, request: ConflictRequest, error: InvalidDecisionError) -> None:
        self.app.notify(INVALID_RESOLUTION_MESSAGE, severity="error")

#
# End of conflict_dialog.py
########################################################################################################################
