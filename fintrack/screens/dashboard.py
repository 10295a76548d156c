"""Main dashboard screen."""

import logging
from datetime import date
from pathlib import Path

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import Screen
from textual.widgets import Label, Static

from fintrack.api.sync import SyncError
from fintrack.auth import AuthorizationError
from fintrack.db.models import SyncState, SyncStatus
from fintrack.ledger import DataImportError, Ledger, NotFoundError
from fintrack.recurrence import shift_month
from fintrack.screens.dialogs import ConfirmScreen, PathInputScreen
from fintrack.screens.forms import (
    ExpenseFormScreen,
    PaymentMethodFormScreen,
    ReminderFormScreen,
)
from fintrack.widgets.tables import (
    ExpenseTable,
    PaymentMethodTable,
    ReminderTable,
    format_currency,
    format_date,
)

SYNC_LABELS = {
    SyncStatus.OFFLINE: 'Local Storage',
    SyncStatus.SYNCING: 'Syncing...',
    SyncStatus.ONLINE: 'Google Drive Connected',
}

log = logging.getLogger('fintrack.ui')


class StatusBar(Static):
    """Status bar showing sync state and record counts."""

    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        background: $primary;
        color: $text;
        padding: 0 1;
    }
    """

    def compose(self) -> ComposeResult:
        """Create status bar content."""
        yield Label('', id='status-text')

    def show_state(self, state: SyncState, counts: tuple[int, int, int]) -> None:
        """Render the sync state and counts."""
        last_sync = state.last_sync.strftime('%d/%m/%Y %H:%M') if state.last_sync else 'Never'
        expenses, methods, reminders = counts
        self.query_one('#status-text', Label).update(
            f'{SYNC_LABELS[state.status]} | Last sync: {last_sync} | '
            f'{expenses} expenses, {methods} methods, {reminders} reminders'
        )


class DashboardScreen(Screen):
    """Monthly overview with expenses, payment methods and reminders."""

    DEFAULT_CSS = """
    DashboardScreen {
        layout: grid;
        grid-size: 2;
        grid-columns: 3fr 2fr;
    }

    #main-panel, #side-panel {
        height: 100%;
    }

    #month-summary {
        height: auto;
        padding: 0 1;
        text-style: bold;
    }

    .panel-title {
        padding: 0 1;
        color: $text-muted;
    }

    #expenses {
        height: 1fr;
        border: solid $secondary;
        margin: 0 1 1 1;
    }

    #methods, #reminders {
        height: 1fr;
        border: solid $secondary;
        margin: 0 1 1 1;
    }

    #insights {
        height: auto;
        padding: 1;
        margin: 0 1 1 1;
        background: $surface-darken-1;
        border: solid $secondary;
    }
    """

    BINDINGS = [
        Binding('a', 'add_expense', 'Expense', show=True, priority=True),
        Binding('m', 'add_method', 'Method', show=True, priority=True),
        Binding('r', 'add_reminder', 'Reminder', show=True, priority=True),
        Binding('p', 'mark_paid', 'Paid', show=True, priority=True),
        Binding('d', 'set_default', 'Default', show=True, priority=True),
        Binding('x', 'delete', 'Delete', show=True, priority=True),
        Binding('X', 'clear_all', 'Clear all', show=False, priority=True),
        Binding('[', 'previous_month', 'Prev month', show=False, priority=True),
        Binding(']', 'next_month', 'Next month', show=False, priority=True),
        Binding('c', 'connect', 'Connect', show=True, priority=True),
        Binding('s', 'sync', 'Sync', show=True, priority=True),
        Binding('l', 'restore', 'Load from Drive', show=False, priority=True),
        Binding('o', 'disconnect', 'Disconnect', show=False, priority=True),
        Binding('e', 'export', 'Export', show=True, priority=True),
        Binding('i', 'import', 'Import', show=True, priority=True),
        Binding('q', 'quit', 'Quit', show=True, priority=True),
    ]

    def __init__(self, today: date | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._today = today or date.today()
        self._month = self._today.replace(day=1)

    @property
    def ledger(self) -> Ledger:
        """Ledger of the running application."""
        return self.app.session.ledger

    @property
    def currency(self) -> str:
        """Configured currency symbol."""
        return self.app.session.config.display.currency_symbol

    def compose(self) -> ComposeResult:
        """Create screen layout."""
        with Vertical(id='main-panel'):
            yield Static('', id='month-summary')
            yield Label('Expenses this month', classes='panel-title')
            yield ExpenseTable(currency_symbol=self.currency, id='expenses')
            yield Static('', id='insights')
        with Vertical(id='side-panel'):
            yield Label('Payment methods', classes='panel-title')
            yield PaymentMethodTable(currency_symbol=self.currency, id='methods')
            yield Label('Reminders', classes='panel-title')
            yield ReminderTable(currency_symbol=self.currency, id='reminders')
        yield StatusBar()

    def on_mount(self) -> None:
        """Populate all panels."""
        self.refresh_views()
        self.set_interval(1.0, self._refresh_status)

    def refresh_views(self) -> None:
        """Re-render every panel from the ledger."""
        ledger = self.ledger
        month_expenses = sorted(
            ledger.current_month_expenses(self._month), key=lambda e: e.date, reverse=True
        )
        self.query_one('#month-summary', Static).update(
            f'{self._month.strftime("%B %Y")}: '
            f'{format_currency(ledger.monthly_total(self._month), self.currency)}'
        )
        self.query_one('#expenses', ExpenseTable).load_expenses(month_expenses)
        self.query_one('#methods', PaymentMethodTable).load_methods(ledger.payment_methods)
        self.query_one('#reminders', ReminderTable).load_reminders(ledger.reminders, self._today)
        self.query_one('#insights', Static).update(self._insights_text())
        self._refresh_status()

    def _insights_text(self) -> str:
        """Upcoming payments and category breakdown for the side panel."""
        ledger = self.ledger
        lines = ['Upcoming payments:']
        upcoming = ledger.upcoming_reminders(self._today)
        if not upcoming:
            lines.append('  Nothing due soon')
        for reminder, days in upcoming:
            when = 'today' if days == 0 else f'in {days} day(s)'
            lines.append(
                f'  {reminder.name} {format_currency(reminder.amount, self.currency)} '
                f'due {format_date(reminder.due_date)} ({when})'
            )
        overdue = ledger.overdue_reminders(self._today)
        if overdue:
            lines.append(f'  {len(overdue)} overdue')
        lines.append('')
        lines.append('Spending by category:')
        by_category = ledger.spending_by_category(self._month)
        if not by_category:
            lines.append('  No expenses this month')
        for category, total in by_category.items():
            lines.append(f'  {category.value}: {format_currency(total, self.currency)}')
        by_method = ledger.spending_by_payment_method(self._month)
        if by_method:
            lines.append('')
            lines.append('Spending by payment method:')
        for name, total in by_method:
            label = name or 'No payment method'
            lines.append(f'  {label}: {format_currency(total, self.currency)}')
        return '\n'.join(lines)

    def _refresh_status(self) -> None:
        """Update the status bar."""
        ledger = self.ledger
        counts = (len(ledger.expenses), len(ledger.payment_methods), len(ledger.reminders))
        self.query_one(StatusBar).show_state(self.app.session.sync.state, counts)

    # Record intents

    def action_add_expense(self) -> None:
        """Open the expense form."""
        self.app.push_screen(
            ExpenseFormScreen(self.ledger.payment_methods, self._today), self._handle_new_expense
        )

    def _handle_new_expense(self, values: dict | None) -> None:
        """Save a submitted expense."""
        if values:
            self.run_worker(self._add_record(self.ledger.add_expense, values, 'Expense added'))

    def action_add_method(self) -> None:
        """Open the payment method form."""
        self.app.push_screen(PaymentMethodFormScreen(), self._handle_new_method)

    def _handle_new_method(self, values: dict | None) -> None:
        """Save a submitted payment method."""
        if values:
            self.run_worker(
                self._add_record(self.ledger.add_payment_method, values, 'Payment method added')
            )

    def action_add_reminder(self) -> None:
        """Open the reminder form."""
        self.app.push_screen(
            ReminderFormScreen(self.ledger.payment_methods, self._today),
            self._handle_new_reminder,
        )

    def _handle_new_reminder(self, values: dict | None) -> None:
        """Save a submitted reminder."""
        if values:
            self.run_worker(self._add_record(self.ledger.add_reminder, values, 'Reminder added'))

    async def _add_record(self, add, values: dict, message: str) -> None:
        """Run a ledger add operation and report the outcome."""
        try:
            await add(**values)
        except ValueError as e:
            self.notify(str(e), severity='error')
            return
        self.refresh_views()
        self.notify(message)

    def action_mark_paid(self) -> None:
        """Record payment of the highlighted reminder."""
        reminder_id = self.query_one('#reminders', ReminderTable).current_id()
        if reminder_id is None:
            self.notify('No reminder selected', severity='warning')
            return
        self.run_worker(self._mark_paid(reminder_id))

    async def _mark_paid(self, reminder_id: str) -> None:
        """Mark a reminder paid (async)."""
        try:
            await self.ledger.mark_reminder_paid(reminder_id, today=self._today)
        except NotFoundError:
            self.notify('Reminder no longer exists', severity='warning')
            return
        self.refresh_views()
        self.notify('Payment recorded and reminder updated!')

    def action_set_default(self) -> None:
        """Make the highlighted payment method the default."""
        method_id = self.query_one('#methods', PaymentMethodTable).current_id()
        if method_id is not None:
            self.run_worker(self._set_default(method_id))

    async def _set_default(self, method_id: str) -> None:
        """Set the default payment method (async)."""
        if await self.ledger.set_default_payment_method(method_id):
            self.refresh_views()
            self.notify('Default payment method updated!')

    def action_delete(self) -> None:
        """Delete the highlighted record of the focused table, after confirmation."""
        focused = self.focused
        if isinstance(focused, PaymentMethodTable):
            kind, delete = 'payment method', self.ledger.delete_payment_method
        elif isinstance(focused, ReminderTable):
            kind, delete = 'reminder', self.ledger.delete_reminder
        elif isinstance(focused, ExpenseTable):
            kind, delete = 'expense', self.ledger.delete_expense
        else:
            self.notify('Select a record to delete', severity='warning')
            return
        record_id = focused.current_id()
        if record_id is None:
            return
        self.app.push_screen(
            ConfirmScreen(f'Delete this {kind}?', 'This cannot be undone.', confirm_label='Delete'),
            lambda confirmed: self._handle_delete_confirmed(confirmed, delete, record_id, kind),
        )

    def _handle_delete_confirmed(self, confirmed: bool, delete, record_id: str, kind: str) -> None:
        """Delete once confirmed."""
        if confirmed:
            self.run_worker(self._delete(delete, record_id, kind))

    async def _delete(self, delete, record_id: str, kind: str) -> None:
        """Run a delete (async); a missing record is silently ignored."""
        if await delete(record_id):
            self.refresh_views()
            self.notify(f'{kind.capitalize()} deleted successfully!')

    def action_clear_all(self) -> None:
        """Delete every record, after confirmation."""
        self.app.push_screen(
            ConfirmScreen(
                'Clear all data?',
                'Every expense, payment method and reminder is deleted.',
                confirm_label='Clear',
            ),
            self._handle_clear_confirmed,
        )

    def _handle_clear_confirmed(self, confirmed: bool) -> None:
        """Clear once confirmed."""
        if confirmed:
            self.run_worker(self._clear_all())

    async def _clear_all(self) -> None:
        """Clear the ledger (async)."""
        await self.ledger.clear_all()
        self.refresh_views()
        self.notify('All data cleared')

    def action_previous_month(self) -> None:
        """Show the previous month."""
        self._month = shift_month(self._month, -1)
        self.refresh_views()

    def action_next_month(self) -> None:
        """Show the next month."""
        self._month = shift_month(self._month, 1)
        self.refresh_views()

    # Sync intents

    def action_connect(self) -> None:
        """Connect to Google Drive."""
        if not self.app.session.config.drive.is_configured:
            self.notify('Set drive.client_id and drive.client_secret first', severity='error')
            return
        self.notify('Connecting to Google Drive...')
        self.run_worker(self._connect())

    async def _connect(self) -> None:
        """Run the connection flow (async)."""
        try:
            await self.app.session.sync.connect()
        except (AuthorizationError, SyncError) as e:
            log.error(f'Connect failed: {e}')
            self.notify(e.user_message, severity='error')
        else:
            self.notify('Successfully connected to Google Drive!')
        self._refresh_status()

    def action_sync(self) -> None:
        """Push everything to Google Drive."""
        if not self.app.session.sync.state.is_connected:
            self.notify('Please connect to Google Drive first', severity='error')
            return
        self.run_worker(self._sync())

    async def _sync(self) -> None:
        """Run a full sync (async)."""
        if await self.app.session.sync.full_sync():
            self.notify('Manual sync completed successfully!')
        else:
            self.notify('Manual sync failed. Please try again.', severity='error')
        self._refresh_status()

    def action_restore(self) -> None:
        """Replace local data with the copy on Google Drive."""
        if not self.app.session.sync.state.is_connected:
            self.notify('Please connect to Google Drive first', severity='error')
            return
        self.app.push_screen(
            ConfirmScreen(
                'Load from Google Drive?',
                'Local records are replaced by the Drive copy.',
                confirm_label='Load',
            ),
            self._handle_restore_confirmed,
        )

    def _handle_restore_confirmed(self, confirmed: bool) -> None:
        """Restore once confirmed."""
        if confirmed:
            self.run_worker(self._restore())

    async def _restore(self) -> None:
        """Pull all collections (async)."""
        restored = await self.ledger.restore_from_remote()
        self.refresh_views()
        self.notify(f'Loaded {len(restored)} collection(s) from Google Drive')

    def action_disconnect(self) -> None:
        """Stop syncing with Google Drive."""
        self.run_worker(self._disconnect())

    async def _disconnect(self) -> None:
        """Disconnect (async)."""
        await self.app.session.sync.disconnect()
        self._refresh_status()
        self.notify('Disconnected from Google Drive')

    # Export and import

    def action_export(self) -> None:
        """Ask where to write an export."""
        self.app.push_screen(
            PathInputScreen('Export to file', default=Ledger.export_filename(self._today)),
            self._handle_export_path,
        )

    def _handle_export_path(self, path: Path | None) -> None:
        """Write the export file."""
        if path is None:
            return
        try:
            path.write_text(self.ledger.export_data(), encoding='utf-8')
        except OSError as e:
            self.notify(f'Export failed: {e}', severity='error')
            return
        self.notify('Data exported successfully!')

    def action_import(self) -> None:
        """Ask which file to import."""
        self.app.push_screen(
            PathInputScreen('Import from file', must_exist=True),
            self._handle_import_path,
        )

    def _handle_import_path(self, path: Path | None) -> None:
        """Start importing a file."""
        if path is not None:
            self.run_worker(self._import(path))

    async def _import(self, path: Path) -> None:
        """Read and import a file (async)."""
        try:
            await self.ledger.import_data(path.read_text(encoding='utf-8'))
        except (OSError, UnicodeDecodeError) as e:
            self.notify(f'Could not read {path}: {e}', severity='error')
            return
        except DataImportError as e:
            log.error(f'Import failed: {e}')
            self.notify(e.user_message, severity='error')
            return
        self.refresh_views()
        self.notify('Data imported successfully!')

    def action_quit(self) -> None:
        """Quit the application."""
        self.app.exit()
