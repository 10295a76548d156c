"""Tests for Textual widgets."""

from datetime import date
from decimal import Decimal

from rich.text import Text
from textual.app import App, ComposeResult

from fintrack.db.models import (
    Expense,
    ExpenseCategory,
    PaymentMethod,
    PaymentMethodType,
    Recurrence,
    Reminder,
    ReminderStatus,
)
from fintrack.widgets.tables import (
    STATUS_STYLES,
    ExpenseTable,
    PaymentMethodTable,
    ReminderTable,
    format_currency,
    format_date,
    truncate,
)


def make_expense(id: str = "e1", method_name: str = "HDFC") -> Expense:
    """Create a test expense."""
    return Expense(
        id=id,
        date=date(2024, 3, 5),
        amount=Decimal("1234.5"),
        description="Weekly groceries",
        category=ExpenseCategory.GROCERIES,
        payment_method_id="pm_1" if method_name else None,
        payment_method_name=method_name,
    )


def make_reminder(id: str = "r1", due_date: date = date(2024, 6, 10)) -> Reminder:
    """Create a test reminder."""
    return Reminder(
        id=id,
        name="Electricity",
        amount=Decimal("800"),
        due_date=due_date,
        recurrence=Recurrence.MONTHLY,
        payment_method_id=None,
        payment_method_name="",
        lead_days=3,
    )


class TablesTestApp(App):
    """Test app with one of each table."""

    def compose(self) -> ComposeResult:
        yield ExpenseTable(id="expenses")
        yield PaymentMethodTable(currency_symbol="$", id="methods")
        yield ReminderTable(id="reminders")


class TestFormatting:
    """Tests for formatting helpers."""

    def test_format_currency(self):
        """Test grouping and two decimals."""
        assert format_currency(Decimal("1234.5")) == "₹1,234.50"
        assert format_currency(Decimal("0"), "$") == "$0.00"

    def test_format_date(self):
        """Test DD/MM/YYYY display."""
        assert format_date(date(2024, 3, 5)) == "05/03/2024"

    def test_truncate(self):
        """Test long text is shortened with an ellipsis."""
        assert truncate("short", 10) == "short"
        assert truncate("a" * 12, 10) == "aaaaaaa..."

    def test_status_styles(self):
        """Test every reminder status has a style."""
        assert set(STATUS_STYLES) == set(ReminderStatus)
        assert STATUS_STYLES[ReminderStatus.OVERDUE] == ("Overdue", "bold red")


class TestExpenseTable:
    """Tests for ExpenseTable widget."""

    async def test_columns_on_mount(self):
        """Test that columns are added on mount."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#expenses", ExpenseTable)
            assert len(table.columns) == 5

    async def test_load_expenses(self):
        """Test loading expenses fills rows and ids."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#expenses", ExpenseTable)
            table.load_expenses([make_expense("e1"), make_expense("e2", method_name="")])
            assert table.row_count == 2
            assert table.current_id() == "e1"
            row = table.get_row_at(0)
            assert row[0] == "05/03/2024"
            assert row[1].plain == "₹1,234.50"
            assert row[4].plain == "HDFC"
            assert table.get_row_at(1)[4].plain == "-"

    async def test_reload_replaces_rows(self):
        """Test loading twice does not accumulate rows."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#expenses", ExpenseTable)
            table.load_expenses([make_expense("e1"), make_expense("e2")])
            table.load_expenses([make_expense("e3")])
            assert table.row_count == 1
            assert table.current_id() == "e3"

    async def test_duplicate_ids_allowed(self):
        """Test imported records sharing an id still display."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#expenses", ExpenseTable)
            table.load_expenses([make_expense("same"), make_expense("same")])
            assert table.row_count == 2

    async def test_current_id_empty(self):
        """Test no id when the table is empty."""
        app = TablesTestApp()
        async with app.run_test():
            assert app.query_one("#expenses", ExpenseTable).current_id() is None


class TestPaymentMethodTable:
    """Tests for PaymentMethodTable widget."""

    async def test_load_methods(self):
        """Test default marker and label."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#methods", PaymentMethodTable)
            table.load_methods([
                PaymentMethod(
                    id="pm_1",
                    name="HDFC",
                    type=PaymentMethodType.CREDIT_CARD,
                    last_four="4321",
                    is_default=True,
                ),
                PaymentMethod(id="pm_2", name="Cash", type=PaymentMethodType.CASH, color="bad"),
            ])
            first = table.get_row_at(0)
            assert first[1] == "HDFC (*4321)"
            assert first[2] == "Credit Card"
            assert isinstance(first[3], Text)
            assert table.get_row_at(1)[3] == ""

    async def test_swatch_style_falls_back(self):
        """Test an invalid color uses the default swatch."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#methods", PaymentMethodTable)
            assert table._swatch_style("#FF0000") == "#FF0000"
            assert table._swatch_style("red; bold") == "#1FB8CD"


class TestReminderTable:
    """Tests for ReminderTable widget."""

    async def test_load_reminders_status(self):
        """Test status and day count relative to today."""
        app = TablesTestApp()
        async with app.run_test():
            table = app.query_one("#reminders", ReminderTable)
            table.load_reminders(
                [make_reminder("r1", date(2024, 6, 10)), make_reminder("r2", date(2024, 6, 1))],
                today=date(2024, 6, 8),
            )
            due_soon = table.get_row_at(0)
            assert due_soon[0].plain == "Due soon"
            assert due_soon[5] == "2"
            overdue = table.get_row_at(1)
            assert overdue[0].plain == "Overdue"
            assert overdue[5] == "-7"
