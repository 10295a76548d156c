"""Data tables for expenses, payment methods and reminders."""

from datetime import date
from decimal import Decimal

from rich.text import Text
from textual.widgets import DataTable

from fintrack.db.models import Expense, PaymentMethod, Reminder, ReminderStatus
from fintrack.ledger import DEFAULT_METHOD_COLOR, days_until_due, is_hex_color, reminder_status

STATUS_STYLES = {
    ReminderStatus.OVERDUE: ("Overdue", "bold red"),
    ReminderStatus.DUE_SOON: ("Due soon", "yellow"),
    ReminderStatus.SCHEDULED: ("Scheduled", "green"),
}


def format_currency(amount: Decimal, symbol: str = "₹") -> str:
    """Format an amount with the currency symbol and two decimals."""
    return f"{symbol}{amount:,.2f}"


def format_date(value: date) -> str:
    """Format a date as DD/MM/YYYY."""
    return value.strftime("%d/%m/%Y")


def truncate(value: str, max_len: int) -> str:
    """Shorten text to fit a column."""
    if len(value) > max_len:
        return value[: max_len - 3] + "..."
    return value


class RecordTable(DataTable):
    """Row-cursor table keyed by record id."""

    BINDINGS = [
        ("j", "cursor_down", "Down"),
        ("k", "cursor_up", "Up"),
    ]

    COLUMN_NAMES: tuple[str, ...] = ()

    def __init__(self, currency_symbol: str = "₹", **kwargs) -> None:
        super().__init__(**kwargs)
        self.cursor_type = "row"
        self._currency_symbol = currency_symbol
        self._row_ids: list[str] = []

    def on_mount(self) -> None:
        """Set up table columns on mount."""
        for name in self.COLUMN_NAMES:
            self.add_column(name, key=name)

    def current_id(self) -> str | None:
        """Id of the record under the cursor."""
        if self.row_count == 0:
            return None
        row = self.cursor_row
        if row < 0 or row >= len(self._row_ids):
            return None
        return self._row_ids[row]

    def _reset(self) -> None:
        """Clear rows before reloading."""
        self._row_ids = []
        self.clear()

    def _amount_cell(self, amount: Decimal) -> Text:
        """Format an amount cell."""
        return Text(format_currency(amount, self._currency_symbol), style="green")


class ExpenseTable(RecordTable):
    """Table of expenses."""

    COLUMN_NAMES = ("Date", "Amount", "Description", "Category", "Paid With")

    def load_expenses(self, expenses: list[Expense]) -> None:
        """Load expenses into the table."""
        self._reset()
        for expense in expenses:
            self._row_ids.append(expense.id)
            self.add_row(
                format_date(expense.date),
                self._amount_cell(expense.amount),
                truncate(expense.description, 40),
                expense.category.value,
                self._method_cell(expense.payment_method_name),
            )

    def _method_cell(self, name: str) -> Text:
        """Format the payment method snapshot name."""
        if not name:
            return Text("-", style="dim")
        return Text(truncate(name, 20))


class PaymentMethodTable(RecordTable):
    """Table of payment methods."""

    COLUMN_NAMES = ("Color", "Name", "Type", "Default")

    def load_methods(self, methods: list[PaymentMethod]) -> None:
        """Load payment methods into the table."""
        self._reset()
        for method in methods:
            self._row_ids.append(method.id)
            self.add_row(
                Text("●", style=self._swatch_style(method.color)),
                method.label,
                method.type.value,
                Text("★", style="yellow") if method.is_default else "",
            )

    def _swatch_style(self, color: str) -> str:
        """Style for the color swatch, ignoring unparseable colors."""
        return color if is_hex_color(color) else DEFAULT_METHOD_COLOR


class ReminderTable(RecordTable):
    """Table of reminders with due status relative to today."""

    COLUMN_NAMES = ("Status", "Due", "Name", "Amount", "Repeats", "Days")

    def load_reminders(self, reminders: list[Reminder], today: date) -> None:
        """Load reminders into the table."""
        self._reset()
        for reminder in reminders:
            self._row_ids.append(reminder.id)
            label, style = STATUS_STYLES[reminder_status(reminder, today)]
            self.add_row(
                Text(label, style=style),
                format_date(reminder.due_date),
                truncate(reminder.name, 30),
                self._amount_cell(reminder.amount),
                reminder.recurrence.value,
                str(days_until_due(reminder, today)),
            )
