"""Modal forms that collect validated field values for new records.

Each form dismisses with a dict of keyword arguments for the matching
``Ledger.add_*`` method, or None when cancelled.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Input, Label, Select, Static

from fintrack.db.models import ExpenseCategory, PaymentMethod, PaymentMethodType, Recurrence
from fintrack.ledger import DEFAULT_LEAD_DAYS, DEFAULT_METHOD_COLOR

NO_METHOD = ''

FORM_CSS = """
{name} {{
    align: center middle;
}}

{name} #form {{
    width: 64;
    height: auto;
    background: $surface;
    border: thick $primary;
    padding: 1 2;
}}

{name} #title {{
    text-align: center;
    text-style: bold;
    margin-bottom: 1;
}}

{name} #hint {{
    text-align: center;
    color: $text-muted;
    margin-top: 1;
}}
"""


def parse_amount(text: str) -> Decimal:
    """Parse a non-negative amount typed by the user."""
    try:
        amount = Decimal(text.replace(',', '').strip())
    except InvalidOperation as e:
        raise ValueError(f'Invalid amount: {text!r}') from e
    if not amount.is_finite() or amount < 0:
        raise ValueError('Amount must be a non-negative number')
    try:
        return amount.quantize(Decimal('0.01'))
    except InvalidOperation as e:
        raise ValueError('Amount is too large') from e


def parse_date(text: str) -> date:
    """Parse a date typed as DD/MM/YYYY or YYYY-MM-DD."""
    text = text.strip()
    for fmt in ('%d/%m/%Y', '%Y-%m-%d'):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f'Invalid date: {text!r}')


def method_options(methods: list[PaymentMethod]) -> list[tuple[str, str]]:
    """Select options for choosing a payment method."""
    return [('No payment method', NO_METHOD)] + [(m.label, m.id) for m in methods]


def default_method_id(methods: list[PaymentMethod]) -> str:
    """Id of the default method, pre-selected in forms."""
    return next((m.id for m in methods if m.is_default), NO_METHOD)


class RecordFormScreen(ModalScreen[dict | None]):
    """Shared behaviour for record forms."""

    BINDINGS = [
        Binding('escape', 'cancel', 'Cancel', show=True),
        Binding('ctrl+s', 'submit', 'Save', show=True, priority=True),
    ]

    TITLE_TEXT = ''

    def compose(self) -> ComposeResult:
        """Create form layout."""
        with Container(id='form'):
            yield Static(self.TITLE_TEXT, id='title')
            yield from self.compose_fields()
            yield Static('Ctrl+S: Save | Esc: Cancel', id='hint')

    def compose_fields(self) -> ComposeResult:
        """Yield the form's input widgets."""
        yield from ()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Submit when Enter is pressed in any field."""
        self.action_submit()

    def action_cancel(self) -> None:
        """Dismiss without saving."""
        self.dismiss(None)

    def action_submit(self) -> None:
        """Validate fields and dismiss with their values."""
        try:
            values = self.collect()
        except ValueError as e:
            self.notify(str(e), severity='warning')
            return
        self.dismiss(values)

    def collect(self) -> dict:
        """Read and validate field values."""
        raise NotImplementedError

    def _text(self, field_id: str) -> str:
        """Stripped value of an Input."""
        return self.query_one(f'#{field_id}', Input).value.strip()

    def _choice(self, field_id: str):
        """Selected value of a Select."""
        return self.query_one(f'#{field_id}', Select).value

    def _method_choice(self) -> str | None:
        """Selected payment method id, or None."""
        return self._choice('method') or None


class ExpenseFormScreen(RecordFormScreen):
    """Form for logging an expense."""

    DEFAULT_CSS = FORM_CSS.format(name='ExpenseFormScreen')
    TITLE_TEXT = 'Add Expense'

    def __init__(self, methods: list[PaymentMethod], today: date | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._methods = methods
        self._today = today or date.today()

    def compose_fields(self) -> ComposeResult:
        """Expense fields."""
        yield Label('Date')
        yield Input(value=self._today.strftime('%d/%m/%Y'), id='date')
        yield Label('Amount')
        yield Input(placeholder='0.00', id='amount')
        yield Label('Description')
        yield Input(id='description')
        yield Label('Category')
        yield Select(
            [(c.value, c) for c in ExpenseCategory],
            value=ExpenseCategory.FOOD_AND_DINING,
            allow_blank=False,
            id='category',
        )
        yield Label('Payment method')
        yield Select(
            method_options(self._methods),
            value=default_method_id(self._methods),
            allow_blank=False,
            id='method',
        )

    def on_mount(self) -> None:
        """Focus the amount field."""
        self.query_one('#amount', Input).focus()

    def collect(self) -> dict:
        """Expense keyword arguments."""
        description = self._text('description')
        if not description:
            raise ValueError('Description is required')
        return {
            'expense_date': parse_date(self._text('date')),
            'amount': parse_amount(self._text('amount')),
            'description': description,
            'category': self._choice('category'),
            'payment_method_id': self._method_choice(),
        }


class PaymentMethodFormScreen(RecordFormScreen):
    """Form for adding a payment method."""

    DEFAULT_CSS = FORM_CSS.format(name='PaymentMethodFormScreen')
    TITLE_TEXT = 'Add Payment Method'

    def compose_fields(self) -> ComposeResult:
        """Payment method fields."""
        yield Label('Name')
        yield Input(id='name')
        yield Label('Type')
        yield Select(
            [(t.value, t) for t in PaymentMethodType],
            value=PaymentMethodType.CREDIT_CARD,
            allow_blank=False,
            id='type',
        )
        yield Label('Last four digits (optional)')
        yield Input(max_length=4, id='last-four')
        yield Label('Color')
        yield Input(value=DEFAULT_METHOD_COLOR, id='color')

    def on_mount(self) -> None:
        """Focus the name field."""
        self.query_one('#name', Input).focus()

    def collect(self) -> dict:
        """Payment method keyword arguments."""
        name = self._text('name')
        if not name:
            raise ValueError('Name is required')
        return {
            'name': name,
            'method_type': self._choice('type'),
            'last_four': self._text('last-four'),
            'color': self._text('color') or DEFAULT_METHOD_COLOR,
        }


class ReminderFormScreen(RecordFormScreen):
    """Form for adding a bill reminder."""

    DEFAULT_CSS = FORM_CSS.format(name='ReminderFormScreen')
    TITLE_TEXT = 'Add Reminder'

    def __init__(self, methods: list[PaymentMethod], today: date | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._methods = methods
        self._today = today or date.today()

    def compose_fields(self) -> ComposeResult:
        """Reminder fields."""
        tomorrow = self._today + timedelta(days=1)
        yield Label('Name')
        yield Input(id='name')
        yield Label('Amount')
        yield Input(placeholder='0.00', id='amount')
        yield Label('Due date')
        yield Input(value=tomorrow.strftime('%d/%m/%Y'), id='due-date')
        yield Label('Repeats')
        yield Select(
            [(r.value, r) for r in Recurrence],
            value=Recurrence.MONTHLY,
            allow_blank=False,
            id='recurrence',
        )
        yield Label('Payment method')
        yield Select(
            method_options(self._methods),
            value=default_method_id(self._methods),
            allow_blank=False,
            id='method',
        )
        yield Label('Remind days before')
        yield Input(value=str(DEFAULT_LEAD_DAYS), id='lead-days')

    def on_mount(self) -> None:
        """Focus the name field."""
        self.query_one('#name', Input).focus()

    def collect(self) -> dict:
        """Reminder keyword arguments."""
        name = self._text('name')
        if not name:
            raise ValueError('Name is required')
        try:
            lead_days = int(self._text('lead-days') or DEFAULT_LEAD_DAYS)
        except ValueError as e:
            raise ValueError('Reminder days must be a whole number') from e
        if lead_days < 0:
            raise ValueError('Reminder days cannot be negative')
        return {
            'name': name,
            'amount': parse_amount(self._text('amount')),
            'due_date': parse_date(self._text('due-date')),
            'recurrence': self._choice('recurrence'),
            'payment_method_id': self._method_choice(),
            'lead_days': lead_days,
        }
