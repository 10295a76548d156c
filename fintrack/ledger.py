"""In-memory ledger of expenses, payment methods and reminders.

Every mutation changes the in-memory collections first, then persists the
affected collections, then asks the sync engine to push them. Persistence and
push failures never undo or fail the mutation.
"""

import json
import logging
import re
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from fintrack.api.sync import SyncEngine
from fintrack.db.codec import RecordFormatError, decode_collection, encode_collection
from fintrack.db.models import (
    Collection,
    Expense,
    ExpenseCategory,
    PaymentMethod,
    PaymentMethodType,
    Recurrence,
    Reminder,
    ReminderStatus,
)
from fintrack.db.persistence import PersistenceAdapter
from fintrack.recurrence import month_bounds, next_due_date

UNRESOLVED_METHOD_NAME = ''
DEFAULT_METHOD_COLOR = '#1FB8CD'
DEFAULT_LEAD_DAYS = 3
PAID_CATEGORY = ExpenseCategory.OTHER
HEX_COLOR = re.compile(r'^#[0-9a-fA-F]{6}$')

log = logging.getLogger('fintrack.ledger')


class NotFoundError(LookupError):
    """Raised when an operation targets a record that does not exist."""

    pass


class DataImportError(ValueError):
    """Raised when an import document cannot be read."""

    user_message = 'Failed to import data. Please check the file format.'


@dataclass
class ImportSummary:
    """Counts of records replaced by an import."""

    expenses: int | None = None
    payment_methods: int | None = None
    reminders: int | None = None


class Ledger:
    """Owns the domain collections and the derived views over them."""

    def __init__(self, persistence: PersistenceAdapter, sync: SyncEngine):
        self._persistence = persistence
        self._sync = sync
        self.expenses: list[Expense] = []
        self.payment_methods: list[PaymentMethod] = []
        self.reminders: list[Reminder] = []
        sync.bind_source(self.snapshot)

    async def load(self) -> None:
        """Load all collections from durable storage."""
        self.expenses = await self._persistence.load(Collection.EXPENSES)
        self.payment_methods = await self._persistence.load(Collection.PAYMENT_METHODS)
        self.reminders = await self._persistence.load(Collection.REMINDERS)
        log.info(
            f'Loaded {len(self.expenses)} expenses, {len(self.payment_methods)} methods, '
            f'{len(self.reminders)} reminders'
        )

    def snapshot(self) -> dict[Collection, list]:
        """Current collections keyed by collection."""
        return {
            Collection.EXPENSES: self.expenses,
            Collection.PAYMENT_METHODS: self.payment_methods,
            Collection.REMINDERS: self.reminders,
        }

    async def _commit(self, *collections: Collection) -> None:
        """Persist collections, then push them if connected."""
        snapshot = self.snapshot()
        for collection in collections:
            await self._persistence.save(collection, snapshot[collection])
        self._sync.schedule_push(*collections)

    # Expenses

    async def add_expense(
        self,
        expense_date: date,
        amount: Decimal,
        description: str,
        category: ExpenseCategory,
        payment_method_id: str | None = None,
    ) -> Expense:
        """Record a new expense, snapshotting the payment method's name."""
        _require_amount(amount)
        if not description.strip():
            raise ValueError('Description is required')
        expense = Expense(
            id=_new_id(),
            date=expense_date,
            amount=amount,
            description=description.strip(),
            category=category,
            payment_method_id=payment_method_id,
            payment_method_name=self._method_name(payment_method_id),
        )
        self.expenses.insert(0, expense)
        await self._commit(Collection.EXPENSES)
        return expense

    async def delete_expense(self, expense_id: str) -> bool:
        """Remove an expense; returns False if it does not exist."""
        remaining = [e for e in self.expenses if e.id != expense_id]
        if len(remaining) == len(self.expenses):
            return False
        self.expenses = remaining
        await self._commit(Collection.EXPENSES)
        return True

    # Payment methods

    async def add_payment_method(
        self,
        name: str,
        method_type: PaymentMethodType,
        last_four: str = '',
        color: str = DEFAULT_METHOD_COLOR,
    ) -> PaymentMethod:
        """Add a payment method; the first one becomes the default."""
        if not name.strip():
            raise ValueError('Name is required')
        if last_four and not (len(last_four) == 4 and last_four.isdigit()):
            raise ValueError('Last four digits must be exactly four digits')
        if not is_hex_color(color):
            raise ValueError('Color must be a #rrggbb value')
        method = PaymentMethod(
            id=f'pm_{_new_id()}',
            name=name.strip(),
            type=method_type,
            last_four=last_four,
            color=color,
            is_default=not self.payment_methods,
        )
        self.payment_methods.append(method)
        await self._commit(Collection.PAYMENT_METHODS)
        return method

    async def delete_payment_method(self, method_id: str) -> bool:
        """Remove a payment method; references to it are left dangling."""
        remaining = [m for m in self.payment_methods if m.id != method_id]
        if len(remaining) == len(self.payment_methods):
            return False
        self.payment_methods = remaining
        await self._commit(Collection.PAYMENT_METHODS)
        return True

    async def set_default_payment_method(self, method_id: str) -> bool:
        """Make one method the only default; unknown ids change nothing."""
        if self.get_payment_method(method_id) is None:
            return False
        for method in self.payment_methods:
            method.is_default = method.id == method_id
        await self._commit(Collection.PAYMENT_METHODS)
        return True

    def get_payment_method(self, method_id: str | None) -> PaymentMethod | None:
        """Look up a payment method by id."""
        for method in self.payment_methods:
            if method.id == method_id:
                return method
        return None

    def default_payment_method(self) -> PaymentMethod | None:
        """The current default payment method, if any."""
        return next((m for m in self.payment_methods if m.is_default), None)

    def payment_method_label(self, method_id: str | None, fallback: str) -> str:
        """Display name for a reference, falling back when it no longer resolves."""
        method = self.get_payment_method(method_id)
        return method.name if method else fallback

    def _method_name(self, method_id: str | None) -> str:
        """Name snapshot for a reference, or the unresolved sentinel."""
        method = self.get_payment_method(method_id)
        return method.name if method else UNRESOLVED_METHOD_NAME

    # Reminders

    async def add_reminder(
        self,
        name: str,
        amount: Decimal,
        due_date: date,
        recurrence: Recurrence,
        payment_method_id: str | None = None,
        lead_days: int = DEFAULT_LEAD_DAYS,
    ) -> Reminder:
        """Add an active bill reminder."""
        _require_amount(amount)
        if not name.strip():
            raise ValueError('Name is required')
        if lead_days < 0:
            raise ValueError('Reminder days cannot be negative')
        reminder = Reminder(
            id=_new_id(),
            name=name.strip(),
            amount=amount,
            due_date=due_date,
            recurrence=recurrence,
            payment_method_id=payment_method_id,
            payment_method_name=self._method_name(payment_method_id),
            lead_days=lead_days,
        )
        self.reminders.append(reminder)
        await self._commit(Collection.REMINDERS)
        return reminder

    async def delete_reminder(self, reminder_id: str) -> bool:
        """Remove a reminder; returns False if it does not exist."""
        remaining = [r for r in self.reminders if r.id != reminder_id]
        if len(remaining) == len(self.reminders):
            return False
        self.reminders = remaining
        await self._commit(Collection.REMINDERS)
        return True

    def get_reminder(self, reminder_id: str) -> Reminder | None:
        """Look up a reminder by id."""
        return next((r for r in self.reminders if r.id == reminder_id), None)

    async def mark_reminder_paid(self, reminder_id: str, today: date | None = None) -> Expense:
        """Record a reminder's payment as an expense and advance or retire it.

        One-time reminders are removed; recurring ones move to their next due
        date. Raises NotFoundError if the reminder does not exist.
        """
        reminder = self.get_reminder(reminder_id)
        if reminder is None:
            raise NotFoundError(f'Reminder {reminder_id} not found')
        expense = Expense(
            id=_new_id(),
            date=today or date.today(),
            amount=reminder.amount,
            description=f'{reminder.name} - Paid',
            category=PAID_CATEGORY,
            payment_method_id=reminder.payment_method_id,
            payment_method_name=reminder.payment_method_name,
        )
        self.expenses.insert(0, expense)
        if reminder.recurrence == Recurrence.ONE_TIME:
            self.reminders = [r for r in self.reminders if r.id != reminder_id]
        else:
            reminder.due_date = next_due_date(reminder.due_date, reminder.recurrence)
        await self._commit(Collection.EXPENSES, Collection.REMINDERS)
        return expense

    # Bulk operations

    async def clear_all(self) -> None:
        """Delete every record and propagate the empty state."""
        self.expenses = []
        self.payment_methods = []
        self.reminders = []
        await self._persist_all()
        await self._sync.full_sync()

    async def _persist_all(self) -> None:
        """Persist every collection."""
        for collection, records in self.snapshot().items():
            await self._persistence.save(collection, records)

    def export_data(self, now: datetime | None = None) -> str:
        """Serialize all collections into one JSON document."""
        document = {
            collection.value: encode_collection(collection, records)
            for collection, records in self.snapshot().items()
        }
        document['exportDate'] = (now or datetime.now()).isoformat()
        return json.dumps(document, indent=2)

    @staticmethod
    def export_filename(today: date | None = None) -> str:
        """Suggested file name for an export."""
        return f'expense-tracker-data-{(today or date.today()).isoformat()}.json'

    async def import_data(self, text: str) -> ImportSummary:
        """Replace collections present in an exported document.

        The whole document is decoded before anything is assigned, so a
        malformed document leaves the ledger untouched.
        """
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise DataImportError(f'Invalid JSON: {e}') from e
        if not isinstance(document, dict):
            raise DataImportError('Import document must be a JSON object')
        decoded = {}
        try:
            for collection in Collection:
                if document.get(collection.value) is not None:
                    decoded[collection] = decode_collection(collection, document[collection.value])
        except RecordFormatError as e:
            raise DataImportError(str(e)) from e

        summary = ImportSummary()
        if Collection.EXPENSES in decoded:
            self.expenses = decoded[Collection.EXPENSES]
            summary.expenses = len(self.expenses)
        if Collection.PAYMENT_METHODS in decoded:
            self.payment_methods = decoded[Collection.PAYMENT_METHODS]
            summary.payment_methods = len(self.payment_methods)
        if Collection.REMINDERS in decoded:
            self.reminders = decoded[Collection.REMINDERS]
            summary.reminders = len(self.reminders)
        await self._persist_all()
        await self._sync.full_sync()
        return summary

    async def restore_from_remote(self) -> list[Collection]:
        """Replace local collections with non-empty remote snapshots."""
        restored = []
        for collection in Collection:
            records = await self._sync.pull_collection(collection)
            if not records:
                continue
            if collection == Collection.EXPENSES:
                self.expenses = records
            elif collection == Collection.PAYMENT_METHODS:
                self.payment_methods = records
            else:
                self.reminders = records
            await self._persistence.save(collection, records)
            restored.append(collection)
        return restored

    # Derived views

    def current_month_expenses(self, anchor: date) -> list[Expense]:
        """Expenses dated within the calendar month of ``anchor``."""
        first_day, last_day = month_bounds(anchor)
        return [e for e in self.expenses if first_day <= e.date <= last_day]

    def monthly_total(self, anchor: date) -> Decimal:
        """Total spent in the month of ``anchor``."""
        return sum((e.amount for e in self.current_month_expenses(anchor)), Decimal('0'))

    def spending_by_category(self, anchor: date) -> dict[ExpenseCategory, Decimal]:
        """Month totals per category, largest first."""
        totals: dict[ExpenseCategory, Decimal] = defaultdict(Decimal)
        for expense in self.current_month_expenses(anchor):
            totals[expense.category] += expense.amount
        return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))

    def spending_by_payment_method(self, anchor: date) -> list[tuple[str, Decimal]]:
        """Month totals per payment method as (recorded name, total) pairs.

        Expenses are grouped by method id, so two methods sharing a name stay
        separate; each group is labelled with the name recorded on its first
        expense. Expenses without a method form one group.
        """
        groups: dict[str | None, tuple[str, Decimal]] = {}
        for expense in self.current_month_expenses(anchor):
            name, total = groups.get(
                expense.payment_method_id, (expense.payment_method_name, Decimal('0'))
            )
            groups[expense.payment_method_id] = (name, total + expense.amount)
        return list(groups.values())

    def recent_expenses(self, limit: int = 5) -> list[Expense]:
        """Most recent expenses by date."""
        return sorted(self.expenses, key=lambda e: e.date, reverse=True)[:limit]

    def upcoming_reminders(self, today: date) -> list[tuple[Reminder, int]]:
        """Active reminders due within their lead days, soonest first.

        Overdue reminders are not included; see ``overdue_reminders``.
        """
        upcoming = []
        for reminder in self.reminders:
            days = days_until_due(reminder, today)
            if reminder.is_active and 0 <= days <= reminder.lead_days:
                upcoming.append((reminder, days))
        return sorted(upcoming, key=lambda item: item[1])

    def overdue_reminders(self, today: date) -> list[Reminder]:
        """Active reminders whose due date has passed."""
        return [r for r in self.reminders if r.is_active and days_until_due(r, today) < 0]


def days_until_due(reminder: Reminder, today: date) -> int:
    """Whole calendar days from ``today`` until the reminder is due."""
    return (reminder.due_date - today).days


def reminder_status(reminder: Reminder, today: date) -> ReminderStatus:
    """Classify a reminder for list display."""
    days = days_until_due(reminder, today)
    if days < 0:
        return ReminderStatus.OVERDUE
    if days <= reminder.lead_days:
        return ReminderStatus.DUE_SOON
    return ReminderStatus.SCHEDULED


def is_hex_color(value: str) -> bool:
    """Check for a #rrggbb color value."""
    return bool(HEX_COLOR.match(value))


def _new_id() -> str:
    """Generate an opaque record id."""
    return uuid.uuid4().hex


def _require_amount(amount: Decimal) -> None:
    """Reject negative or non-finite amounts."""
    if not isinstance(amount, Decimal) or not amount.is_finite() or amount < 0:
        raise ValueError('Amount must be a non-negative number')
