"""Service layer that composes the settlement engine and the history store.

The engine stays pure; this module adds timestamps, persistence and file
loading on top of it.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..config import Settings
from ..db import Database
from ..exceptions import HistoryError
from ..models import (
    CalculationRecord,
    Expense,
    ExpenseEntry,
    StoredCalculation,
)
from .engine import prepare_calculation, settle

logger = logging.getLogger(__name__)


class SessionInput(BaseModel):
    """Participants and expenses read from a session file.

    Expenses stay raw here; the engine drops malformed ones individually.
    """

    participants: list[str | None] = Field(default_factory=list)
    expenses: list[Any] = Field(default_factory=list)


def load_session_file(path: Path) -> SessionInput:
    """
    Read a session file of the form {"participants": [...], "expenses": [...]}.

    Raises:
        ValueError: If the file is not valid JSON or has the wrong shape
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return SessionInput.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid session file {path}: {e}") from e


class CalculationService:
    """Service for computing, saving and listing settlement calculations."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the calculation service."""
        self.settings = settings
        self.db = database

    def calculate(
        self,
        participants: Iterable[str | None],
        expenses: Iterable[ExpenseEntry | Expense | Mapping[str, Any]],
    ) -> CalculationRecord:
        """
        Compute a settlement and wrap it in a record ready to be saved.

        Raises:
            NoParticipantsError: If there are no participants
            NoValidExpensesError: If no valid expense remains
        """
        names, valid = prepare_calculation(participants, expenses)
        result = settle(names, valid)

        record = CalculationRecord(
            timestamp=datetime.now(UTC),
            participants=names,
            expenses=valid,
            totals=result.totals,
            settlement=result.settlement,
            total_spent=result.total_spent,
        )

        logger.info(
            f"Calculated settlement: {len(record.settlement)} payments, "
            f"total spent {record.total_spent}"
        )

        return record

    def save(self, record: CalculationRecord) -> int:
        """Persist a calculation and return its id."""
        record_id = self.db.save_calculation(record)
        logger.info(f"Saved calculation #{record_id}")
        return record_id

    def history(self) -> list[tuple[int, StoredCalculation]]:
        """Saved calculations, newest first."""
        return self.db.get_calculations()

    def import_history(self, path: Path) -> int:
        """
        Import a JSON array of saved calculations.

        Raises:
            HistoryError: If the file is not a JSON array of valid records
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise HistoryError(f"Invalid history file {path}: {e}") from e

        if not isinstance(data, list):
            raise HistoryError(f"History file {path} must contain a JSON array")

        count = self.db.import_calculations(data)
        logger.info(f"Imported {count} calculations from {path}")
        return count
