"""Conversion between domain records and JSON-compatible dicts.

Field names follow the camelCase layout used by the exported JSON documents
and the Drive data files, so files written by either side stay readable.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from fintrack.db.models import (
    Collection,
    Expense,
    ExpenseCategory,
    PaymentMethod,
    PaymentMethodType,
    Recurrence,
    Reminder,
)


class RecordFormatError(ValueError):
    """Raised when a stored record cannot be decoded."""

    pass


def expense_to_dict(expense: Expense) -> dict:
    """Convert an Expense to a JSON-compatible dict."""
    return {
        "id": expense.id,
        "date": expense.date.isoformat(),
        "amount": str(expense.amount),
        "description": expense.description,
        "category": expense.category.value,
        "paymentMethod": expense.payment_method_id,
        "paymentMethodName": expense.payment_method_name,
        "createdDate": expense.created_at.isoformat(),
    }


def expense_from_dict(data: dict) -> Expense:
    """Build an Expense from a stored dict."""
    try:
        return Expense(
            id=str(data["id"]),
            date=_parse_date(data["date"]),
            amount=_parse_amount(data["amount"]),
            description=_string(data, "description", ""),
            category=_parse_enum(ExpenseCategory, data.get("category"), ExpenseCategory.OTHER),
            payment_method_id=_optional_id(data.get("paymentMethod")),
            payment_method_name=_string(data, "paymentMethodName", ""),
            created_at=_parse_timestamp(data.get("createdDate")),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise RecordFormatError(f"Invalid expense record: {e}") from e


def payment_method_to_dict(method: PaymentMethod) -> dict:
    """Convert a PaymentMethod to a JSON-compatible dict."""
    return {
        "id": method.id,
        "name": method.name,
        "type": method.type.value,
        "lastFour": method.last_four,
        "color": method.color,
        "isDefault": method.is_default,
        "createdDate": method.created_at.isoformat(),
    }


def payment_method_from_dict(data: dict) -> PaymentMethod:
    """Build a PaymentMethod from a stored dict."""
    try:
        return PaymentMethod(
            id=str(data["id"]),
            name=_string(data, "name"),
            type=_parse_enum(PaymentMethodType, data.get("type"), PaymentMethodType.CASH),
            last_four=_string(data, "lastFour", ""),
            color=_string(data, "color", "") or "#1FB8CD",
            is_default=bool(data.get("isDefault", False)),
            created_at=_parse_timestamp(data.get("createdDate")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RecordFormatError(f"Invalid payment method record: {e}") from e


def reminder_to_dict(reminder: Reminder) -> dict:
    """Convert a Reminder to a JSON-compatible dict."""
    return {
        "id": reminder.id,
        "name": reminder.name,
        "amount": str(reminder.amount),
        "dueDate": reminder.due_date.isoformat(),
        "recurrence": reminder.recurrence.value,
        "paymentMethod": reminder.payment_method_id,
        "paymentMethodName": reminder.payment_method_name,
        "reminderDays": reminder.lead_days,
        "isActive": reminder.is_active,
        "createdDate": reminder.created_at.isoformat(),
    }


def reminder_from_dict(data: dict) -> Reminder:
    """Build a Reminder from a stored dict."""
    try:
        return Reminder(
            id=str(data["id"]),
            name=_string(data, "name"),
            amount=_parse_amount(data["amount"]),
            due_date=_parse_date(data["dueDate"]),
            recurrence=Recurrence(data["recurrence"]),
            payment_method_id=_optional_id(data.get("paymentMethod")),
            payment_method_name=_string(data, "paymentMethodName", ""),
            lead_days=int(data.get("reminderDays", 3)),
            is_active=bool(data.get("isActive", True)),
            created_at=_parse_timestamp(data.get("createdDate")),
        )
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        raise RecordFormatError(f"Invalid reminder record: {e}") from e


ENCODERS = {
    Collection.EXPENSES: expense_to_dict,
    Collection.PAYMENT_METHODS: payment_method_to_dict,
    Collection.REMINDERS: reminder_to_dict,
}

DECODERS = {
    Collection.EXPENSES: expense_from_dict,
    Collection.PAYMENT_METHODS: payment_method_from_dict,
    Collection.REMINDERS: reminder_from_dict,
}


def encode_collection(collection: Collection, records: list) -> list[dict]:
    """Encode a list of records of one collection."""
    encoder = ENCODERS[collection]
    return [encoder(record) for record in records]


def decode_collection(collection: Collection, items: list) -> list:
    """Decode a list of stored dicts of one collection.

    Raises RecordFormatError if the payload is not a list of objects or any
    record fails to decode.
    """
    if not isinstance(items, list):
        raise RecordFormatError(f"{collection.value} must be a list")
    decoder = DECODERS[collection]
    records = []
    for item in items:
        if not isinstance(item, dict):
            raise RecordFormatError(f"{collection.value} entries must be objects")
        records.append(decoder(item))
    if collection == Collection.PAYMENT_METHODS:
        _keep_first_default(records)
    return records


def _keep_first_default(methods: list[PaymentMethod]) -> None:
    """Clear the default flag on every method after the first default one."""
    seen_default = False
    for method in methods:
        if method.is_default and seen_default:
            method.is_default = False
        seen_default = seen_default or method.is_default


def _parse_date(value: str) -> date:
    """Parse an ISO date, tolerating a trailing time component."""
    if not isinstance(value, str):
        raise ValueError(f"date must be an ISO string, got {value!r}")
    return date.fromisoformat(value[:10])


def _parse_amount(value) -> Decimal:
    """Parse an amount written as a JSON number or a decimal string."""
    if isinstance(value, bool):
        raise ValueError("amount must be numeric")
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise ValueError("amount must be finite")
    return amount


def _parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO timestamp, accepting the JavaScript 'Z' suffix."""
    if value is None or value == "":
        return datetime.now()
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be an ISO string, got {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _string(data: dict, key: str, default: str | None = None) -> str:
    """Read a text field; missing or null uses ``default``, other types are rejected."""
    value = data.get(key)
    if value is None:
        if default is None:
            raise KeyError(key)
        return default
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _optional_id(value) -> str | None:
    """Normalize a possibly numeric or empty record reference."""
    if value is None or value == "":
        return None
    return str(value)


def _parse_enum(enum_cls, value, default):
    """Look up an enum member by value, falling back for unknown values."""
    try:
        return enum_cls(value)
    except ValueError:
        return default
