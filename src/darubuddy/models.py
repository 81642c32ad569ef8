"""Pydantic domain models for Darubuddy."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import HistoryError

# Saved records store money as plain JSON numbers
Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]

DEFAULT_DESCRIPTION = "Expense"


# ============================================================================
# Input Models
# ============================================================================


class ExpenseEntry(BaseModel):
    """An expense exactly as entered, before any validation.

    Every field is optional: a half-filled form row or a JSON object with a
    typo in the amount still parses, and is dropped later by the engine.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    description: str | None = None
    amount: Decimal | None = None
    payer: str | None = None
    shared_by: list[str] = Field(default_factory=list, alias="sharedBy")

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Decimal | None:
        """Unparseable or non-finite amounts become None instead of failing."""
        if value is None or isinstance(value, bool):
            return None
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None

    @field_validator("shared_by", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Expense(BaseModel):
    """A validated, immutable expense."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    description: str = DEFAULT_DESCRIPTION
    amount: Money = Field(gt=0)
    payer: str = Field(min_length=1)
    shared_by: list[str] = Field(alias="sharedBy", min_length=1)

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> str:
        if value is None or not str(value).strip():
            return DEFAULT_DESCRIPTION
        return str(value).strip()


# ============================================================================
# Result Models
# ============================================================================


class BalanceEntry(BaseModel):
    """Running totals for one participant while expenses are folded in."""

    name: str
    paid: Decimal = Decimal("0")
    owed: Decimal = Decimal("0")


class NetBalance(BaseModel):
    """Net position of a participant: positive = should receive."""

    model_config = ConfigDict(frozen=True)

    name: str
    net: Money


class Transfer(BaseModel):
    """A single payment from a debtor to a creditor."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    amount: Money = Field(gt=0)


class SettlementResult(BaseModel):
    """Output of one settlement computation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    totals: list[NetBalance]
    settlement: list[Transfer]
    total_spent: Money = Field(alias="totalSpent")


# ============================================================================
# Persisted Models
# ============================================================================


class CalculationRecord(BaseModel):
    """A saved settlement calculation.

    Field names match the browser version's localStorage entries so saved
    history can be moved between the two unchanged.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["advanced"] = "advanced"
    timestamp: datetime
    participants: list[str]
    expenses: list[Expense]
    totals: list[NetBalance] = Field(default_factory=list)
    settlement: list[Transfer] = Field(default_factory=list)
    total_spent: Money = Field(alias="totalSpent")

    @model_validator(mode="before")
    @classmethod
    def _fill_total_spent(cls, data: Any) -> Any:
        """Older records may lack totalSpent; derive it from the expenses."""
        if not isinstance(data, dict):
            return data
        if data.get("totalSpent") is not None or data.get("total_spent") is not None:
            return data
        total = Decimal("0")
        for expense in data.get("expenses") or []:
            amount = (
                expense.get("amount")
                if isinstance(expense, dict)
                else getattr(expense, "amount", None)
            )
            try:
                total += Decimal(str(amount or 0))
            except InvalidOperation:
                # Leave it to field validation to report the bad expense
                return data
        return {
            **data,
            "totalSpent": total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        }

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize in the stored (camelCase, numeric money) format."""
        return self.model_dump(mode="json", by_alias=True)


class LegacySimpleRecord(BaseModel):
    """An old equal-split record: everyone pays (alcohol + food) / n."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["simple"] = "simple"
    timestamp: datetime
    names: list[str] = Field(min_length=1)
    alcohol: Money = Decimal("0")
    food: Money = Decimal("0")

    @property
    def participant_count(self) -> int:
        return len(self.names)

    @property
    def per_person(self) -> Decimal:
        return (self.alcohol + self.food) / len(self.names)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


StoredCalculation = CalculationRecord | LegacySimpleRecord


def is_advanced_record(data: dict[str, Any]) -> bool:
    """Records are advanced when tagged so, or when they carry expenses."""
    return data.get("type") == "advanced" or "expenses" in data


def parse_record(data: Any) -> StoredCalculation:
    """
    Parse a raw saved record into the matching model.

    Args:
        data: Decoded JSON object of a single saved calculation

    Returns:
        CalculationRecord or LegacySimpleRecord

    Raises:
        HistoryError: If the record is not an object or fails validation
    """
    if not isinstance(data, dict):
        raise HistoryError(f"Calculation record must be an object, got {data!r}")

    try:
        if is_advanced_record(data):
            return CalculationRecord.model_validate({**data, "type": "advanced"})
        return LegacySimpleRecord.model_validate({**data, "type": "simple"})
    except ValidationError as e:
        raise HistoryError(f"Invalid calculation record: {e}") from e
