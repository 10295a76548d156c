"""Domain models and sync state definitions."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class ExpenseCategory(Enum):
    """Spending categories offered when logging an expense."""

    FOOD_AND_DINING = "Food & Dining"
    GROCERIES = "Groceries"
    TRANSPORTATION = "Transportation"
    FUEL = "Fuel"
    HOUSE_RENT = "House Rent"
    UTILITIES = "Utilities"
    INTERNET_AND_PHONE = "Internet & Phone"
    HEALTHCARE = "Healthcare"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    EDUCATION = "Education"
    TRAVEL = "Travel"
    INSURANCE = "Insurance"
    INVESTMENTS = "Investments"
    EMI_PAYMENTS = "EMI Payments"
    OTHER = "Other"


class PaymentMethodType(Enum):
    """Kinds of payment instrument."""

    CREDIT_CARD = "Credit Card"
    DEBIT_CARD = "Debit Card"
    BANK_ACCOUNT = "Bank Account"
    UPI = "UPI"
    DIGITAL_WALLET = "Digital Wallet"
    CASH = "Cash"


class Recurrence(Enum):
    """How often a reminder repeats."""

    WEEKLY = "Weekly"
    BI_WEEKLY = "Bi-weekly"
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    HALF_YEARLY = "Half-yearly"
    YEARLY = "Yearly"
    ONE_TIME = "One-time"


class ReminderStatus(Enum):
    """Display status of a reminder relative to today."""

    OVERDUE = "overdue"
    DUE_SOON = "due-soon"
    SCHEDULED = "scheduled"


class SyncStatus(Enum):
    """Remote connection status."""

    OFFLINE = "offline"
    SYNCING = "syncing"
    ONLINE = "online"


class Collection(Enum):
    """Entity collections, valued by their storage key."""

    EXPENSES = "expenses"
    PAYMENT_METHODS = "paymentMethods"
    REMINDERS = "reminders"


@dataclass
class Expense:
    """A single logged expense."""

    id: str
    date: date
    amount: Decimal
    description: str
    category: ExpenseCategory
    payment_method_id: str | None
    payment_method_name: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class PaymentMethod:
    """A card, account or wallet used to pay."""

    id: str
    name: str
    type: PaymentMethodType
    last_four: str = ""
    color: str = "#1FB8CD"
    is_default: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def label(self) -> str:
        """Name with masked card suffix when known."""
        if self.last_four:
            return f"{self.name} (*{self.last_four})"
        return self.name


@dataclass
class Reminder:
    """A bill reminder, optionally recurring."""

    id: str
    name: str
    amount: Decimal
    due_date: date
    recurrence: Recurrence
    payment_method_id: str | None
    payment_method_name: str
    lead_days: int = 3
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Credential:
    """OAuth credential for the remote store."""

    access_token: str
    refresh_token: str
    expires_at: datetime


@dataclass
class SyncState:
    """Connection state for the remote store."""

    status: SyncStatus = SyncStatus.OFFLINE
    folder_id: str | None = None
    file_ids: dict[str, str | None] = field(default_factory=dict)
    last_sync: datetime | None = None
    verified: bool = False

    @property
    def is_connected(self) -> bool:
        """Check if pushes may be issued."""
        return self.status == SyncStatus.ONLINE
