"""Main Textual application for FinTrack."""

import logging
import sys

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header

from fintrack.config import Config, ConfigError, load_config
from fintrack.context import AppContext, open_context
from fintrack.screens.dashboard import DashboardScreen

LOG_FILE = "fintrack.log"


class FinTrackApp(App):
    """Personal expense tracker with optional Google Drive sync."""

    TITLE = "FinTrack"
    SUB_TITLE = "Expenses, payment methods and bill reminders"

    CSS = """
    Screen {
        background: $surface;
    }
    """

    BINDINGS = [
        Binding("?", "help", "Help", show=True),
    ]

    def __init__(self, config: Config | None = None):
        super().__init__()
        self._config = config or load_config()
        self._session: AppContext | None = None

    @property
    def config(self) -> Config:
        """Get application configuration."""
        return self._config

    @property
    def session(self) -> AppContext | None:
        """Get the running session's context."""
        return self._session

    def compose(self) -> ComposeResult:
        """Create child widgets for the app."""
        yield Header()
        yield Footer()

    async def on_mount(self) -> None:
        """Open storage, resume sync and show the dashboard."""
        self._session = await open_context(self._config)
        self.push_screen(DashboardScreen())
        self.run_worker(self._resume_sync())

    async def _resume_sync(self) -> None:
        """Reconnect to Google Drive if the last session was connected."""
        await self._session.sync.resume()
        if self._session.sync.state.is_connected:
            self.notify("Google Drive connected")

    async def on_unmount(self) -> None:
        """Clean up resources when app closes."""
        if self._session:
            await self._session.close()

    def action_help(self) -> None:
        """Show help screen."""
        self.notify(
            "a/m/r: add expense, method, reminder | p: mark paid | d: set default | "
            "x: delete | X: clear all | square brackets: change month | "
            "c/s/l/o: connect, sync, load, disconnect | e/i: export, import"
        )


def main() -> None:  # pragma: no cover
    """Entry point for the application."""
    logging.basicConfig(
        filename=LOG_FILE,
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        config = load_config()
    except ConfigError as e:
        sys.exit(str(e))
    app = FinTrackApp(config)
    app.run()


if __name__ == "__main__":  # pragma: no cover
    main()
