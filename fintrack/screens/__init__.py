"""Textual screens for the TUI."""

from fintrack.screens.dashboard import DashboardScreen, StatusBar
from fintrack.screens.dialogs import ConfirmScreen, PathInputScreen
from fintrack.screens.forms import (
    ExpenseFormScreen,
    PaymentMethodFormScreen,
    RecordFormScreen,
    ReminderFormScreen,
)

__all__ = [
    'ConfirmScreen',
    'DashboardScreen',
    'ExpenseFormScreen',
    'PaymentMethodFormScreen',
    'PathInputScreen',
    'RecordFormScreen',
    'ReminderFormScreen',
    'StatusBar',
]
