"""Darubuddy - split shared group expenses and settle up."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .exceptions import NoParticipantsError, NoValidExpensesError
from .models import (
    CalculationRecord,
    Expense,
    ExpenseEntry,
    NetBalance,
    SettlementResult,
    Transfer,
)
from .settle.engine import compute_settlement, reduce_debts, round_currency
from .settle.service import CalculationService

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "NoParticipantsError",
    "NoValidExpensesError",
    "CalculationRecord",
    "Expense",
    "ExpenseEntry",
    "NetBalance",
    "SettlementResult",
    "Transfer",
    "compute_settlement",
    "reduce_debts",
    "round_currency",
    "CalculationService",
]
