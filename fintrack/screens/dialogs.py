"""Modal dialogs for confirmations and file paths."""

from pathlib import Path

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question asked before deleting or overwriting records."""

    DEFAULT_CSS = """
    ConfirmScreen {
        align: center middle;
    }

    ConfirmScreen > Vertical {
        width: 56;
        height: auto;
        background: $surface;
        border: thick $warning;
        padding: 1 2;
    }

    ConfirmScreen .question {
        width: 100%;
        text-align: center;
        text-style: bold;
    }

    ConfirmScreen .detail {
        width: 100%;
        text-align: center;
        color: $text-muted;
        margin: 1 0;
    }

    ConfirmScreen Horizontal {
        height: auto;
        align-horizontal: center;
    }

    ConfirmScreen Button {
        margin: 0 2;
    }
    """

    BINDINGS = [
        Binding('y', 'answer(True)', 'Yes', show=True),
        Binding('n', 'answer(False)', 'No', show=True),
        Binding('escape', 'answer(False)', 'Cancel', show=False),
    ]

    def __init__(
        self, question: str, detail: str = '', confirm_label: str = 'Yes', **kwargs
    ) -> None:
        super().__init__(**kwargs)
        self._question = question
        self._detail = detail
        self._confirm_label = confirm_label

    def compose(self) -> ComposeResult:
        """Create dialog layout."""
        with Vertical():
            yield Label(self._question, id='title', classes='question')
            if self._detail:
                yield Label(self._detail, classes='detail')
            with Horizontal():
                yield Button(self._confirm_label, id='confirm', variant='error')
                yield Button('Cancel', id='cancel')

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Answer from the pressed button."""
        self.dismiss(event.button.id == 'confirm')

    def action_answer(self, confirmed: bool) -> None:
        """Answer from a key binding."""
        self.dismiss(confirmed)


class PathInputScreen(ModalScreen[Path | None]):
    """Asks for a file path to export to or import from.

    With ``must_exist`` the path has to name an existing file; otherwise its
    directory has to exist so the file can be written.
    """

    DEFAULT_CSS = """
    PathInputScreen {
        align: center middle;
    }

    PathInputScreen > Vertical {
        width: 70;
        height: auto;
        background: $surface;
        border: thick $primary;
        padding: 1 2;
    }

    PathInputScreen #title {
        text-style: bold;
        margin-bottom: 1;
    }

    PathInputScreen #hint {
        color: $text-muted;
        margin-top: 1;
    }
    """

    BINDINGS = [
        Binding('escape', 'cancel', 'Cancel', show=True),
    ]

    def __init__(
        self, title: str, default: str = '', must_exist: bool = False, **kwargs
    ) -> None:
        super().__init__(**kwargs)
        self._title = title
        self._default = default
        self._must_exist = must_exist

    def compose(self) -> ComposeResult:
        """Create dialog layout."""
        with Vertical():
            yield Static(self._title, id='title')
            yield Input(value=self._default, placeholder='path/to/file.json', id='path')
            yield Static('Enter: OK | Esc: Cancel', id='hint')

    def on_mount(self) -> None:
        """Focus the path field."""
        self.query_one('#path', Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Validate the path and dismiss with it."""
        error = self.check_path(event.value)
        if error:
            self.notify(error, severity='warning')
            return
        self.dismiss(Path(event.value.strip()).expanduser())

    def check_path(self, value: str) -> str | None:
        """Reason the path cannot be used, or None if it can."""
        if not value.strip():
            return 'Please enter a file path'
        path = Path(value.strip()).expanduser()
        if self._must_exist and not path.is_file():
            return f'File not found: {path}'
        if not self._must_exist and not path.parent.is_dir():
            return f'Folder does not exist: {path.parent}'
        return None

    def action_cancel(self) -> None:
        """Dismiss without a path."""
        self.dismiss(None)
