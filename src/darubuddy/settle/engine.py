"""Core settlement logic: balances, net positions and greedy debt reduction."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import ValidationError

from ..exceptions import NoParticipantsError, NoValidExpensesError
from ..models import (
    BalanceEntry,
    Expense,
    ExpenseEntry,
    NetBalance,
    SettlementResult,
    Transfer,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Anything at or below one cent counts as settled
SETTLE_EPSILON = CENT

# Larger amounts would lose cents in the default 28-digit decimal context
MAX_AMOUNT = Decimal("1e15")


def round_currency(amount: Decimal) -> Decimal:
    """
    Round to whole cents, half away from zero.

    Args:
        amount: Amount as Decimal

    Returns:
        Amount quantized to 2 decimal places
    """
    rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    # Avoid "-0.00" leaking into results
    return rounded if rounded != 0 else Decimal("0.00")


def normalize_participants(names: Iterable[str | None]) -> list[str]:
    """
    Trim names, drop blanks and collapse duplicates.

    Names are the identity of a participant, so a repeated name refers to the
    same person. Only the first occurrence is kept, which keeps the display
    order stable.
    """
    participants: list[str] = []
    seen: set[str] = set()
    for raw in names:
        name = (raw or "").strip()
        if not name:
            continue
        if name in seen:
            logger.warning(f"Duplicate participant '{name}' merged into one")
            continue
        seen.add(name)
        participants.append(name)
    return participants


def _as_entry(expense: ExpenseEntry | Expense | Mapping[str, Any]) -> ExpenseEntry:
    if isinstance(expense, ExpenseEntry):
        return expense
    if isinstance(expense, Expense):
        return ExpenseEntry.model_validate(expense.model_dump())
    return ExpenseEntry.model_validate(expense)


def filter_valid_expenses(
    entries: Iterable[ExpenseEntry | Expense | Mapping[str, Any]],
    participants: Sequence[str],
) -> list[Expense]:
    """
    Keep only well-formed expenses.

    An entry is dropped when it does not parse, its amount is missing, not
    positive or too large, its payer is blank or unknown, or its sharer list
    is empty or names someone who is not a participant.

    Args:
        entries: Raw expense entries (models or plain dicts)
        participants: Normalized participant names

    Returns:
        Validated expenses in input order
    """
    known = set(participants)
    expenses: list[Expense] = []

    for idx, raw in enumerate(entries):
        try:
            entry = _as_entry(raw)
        except ValidationError as e:
            logger.warning(f"Dropping expense #{idx + 1}: {e}")
            continue

        payer = (entry.payer or "").strip()
        shared_by = list(
            dict.fromkeys(
                name.strip() for name in entry.shared_by if name and name.strip()
            )
        )

        if entry.amount is None or entry.amount <= 0:
            logger.warning(f"Dropping expense #{idx + 1}: amount must be positive")
            continue
        if entry.amount >= MAX_AMOUNT:
            logger.warning(
                f"Dropping expense #{idx + 1}: amount {entry.amount} too large"
            )
            continue
        if not payer or payer not in known:
            logger.warning(f"Dropping expense #{idx + 1}: unknown payer {payer!r}")
            continue
        if not shared_by:
            logger.warning(f"Dropping expense #{idx + 1}: nobody shares it")
            continue
        unknown = [name for name in shared_by if name not in known]
        if unknown:
            logger.warning(
                f"Dropping expense #{idx + 1}: not participants: {', '.join(unknown)}"
            )
            continue

        try:
            expenses.append(
                Expense(
                    description=entry.description,
                    amount=entry.amount,
                    payer=payer,
                    shared_by=shared_by,
                )
            )
        except ValidationError as e:
            logger.warning(f"Dropping expense #{idx + 1}: {e}")

    return expenses


def aggregate_balances(
    participants: Sequence[str], expenses: Iterable[Expense]
) -> dict[str, BalanceEntry]:
    """
    Fold expenses into paid/owed totals per participant.

    Each expense is split equally among its sharers. The payer is credited
    the full amount and only owes a share when listed as a sharer.
    """
    balances = {name: BalanceEntry(name=name) for name in participants}

    for expense in expenses:
        share = expense.amount / len(expense.shared_by)
        balances[expense.payer].paid += expense.amount
        for name in expense.shared_by:
            balances[name].owed += share

    return balances


def compute_net_balances(
    participants: Sequence[str], balances: Mapping[str, BalanceEntry]
) -> list[NetBalance]:
    """Reduce paid/owed to a rounded net, in participant order."""
    return [
        NetBalance(
            name=name,
            net=round_currency(balances[name].paid - balances[name].owed),
        )
        for name in participants
    ]


def reduce_debts(nets: Sequence[NetBalance]) -> list[Transfer]:
    """
    Match debtors against creditors with two cursors.

    Steps:
    1. Split into debtors (net < -0.01) and creditors (net > 0.01),
       keeping input order
    2. Pay the smaller of the current debtor's debt and the current
       creditor's claim
    3. Move past whoever has less than a cent left (possibly both)
    4. Stop when either side runs out

    This is a greedy heuristic, not a minimum-transfer solver. The order of
    the output depends only on the order of the input.

    Args:
        nets: Net balances in display order

    Returns:
        Transfers in the order they were matched
    """
    debtors = [[n.name, -n.net] for n in nets if n.net < -SETTLE_EPSILON]
    creditors = [[n.name, n.net] for n in nets if n.net > SETTLE_EPSILON]

    transfers: list[Transfer] = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        debtor, creditor = debtors[i], creditors[j]
        settled = min(debtor[1], creditor[1])

        transfers.append(Transfer(from_=debtor[0], to=creditor[0], amount=settled))

        debtor[1] -= settled
        creditor[1] -= settled

        if debtor[1] < SETTLE_EPSILON:
            i += 1
        if creditor[1] < SETTLE_EPSILON:
            j += 1

    logger.debug(
        f"Reduced {len(debtors)} debtors and {len(creditors)} creditors "
        f"to {len(transfers)} transfers"
    )

    return transfers


def apply_transfers(
    nets: Sequence[NetBalance], transfers: Iterable[Transfer]
) -> dict[str, Decimal]:
    """Net balances left over after every transfer has been paid."""
    remaining = {n.name: n.net for n in nets}
    for transfer in transfers:
        remaining[transfer.from_] += transfer.amount
        remaining[transfer.to] -= transfer.amount
    return remaining


def prepare_calculation(
    participants: Iterable[str | None],
    expenses: Iterable[ExpenseEntry | Expense | Mapping[str, Any]],
) -> tuple[list[str], list[Expense]]:
    """
    Normalize participants and keep only well-formed expenses.

    Returns:
        Tuple of (participant names, valid expenses)

    Raises:
        NoParticipantsError: If no participant name remains after trimming
        NoValidExpensesError: If no well-formed expense remains
    """
    names = normalize_participants(participants)
    if not names:
        raise NoParticipantsError()

    entries = list(expenses)
    valid = filter_valid_expenses(entries, names)
    if not valid:
        raise NoValidExpensesError(dropped=len(entries))

    if len(valid) < len(entries):
        logger.info(f"Dropped {len(entries) - len(valid)} malformed expenses")

    return names, valid


def settle(participants: Sequence[str], expenses: Sequence[Expense]) -> SettlementResult:
    """
    Run the aggregate, net and reduce steps on prepared input.

    Args:
        participants: Normalized participant names
        expenses: Validated expenses whose names are all participants

    Returns:
        Totals per participant, transfers and the total amount spent
    """
    balances = aggregate_balances(participants, expenses)
    totals = compute_net_balances(participants, balances)
    settlement = reduce_debts(totals)
    total_spent = round_currency(sum((e.amount for e in expenses), Decimal("0")))

    logger.info(
        f"Settled {len(expenses)} expenses across {len(participants)} participants "
        f"with {len(settlement)} transfers"
    )

    return SettlementResult(
        totals=totals, settlement=settlement, total_spent=total_spent
    )


def compute_settlement(
    participants: Iterable[str | None],
    expenses: Iterable[ExpenseEntry | Expense | Mapping[str, Any]],
) -> SettlementResult:
    """
    Compute net balances and a settlement for a group.

    Args:
        participants: Participant names as entered
        expenses: Expense entries as entered; malformed ones are skipped

    Returns:
        Totals per participant, transfers and the total amount spent

    Raises:
        NoParticipantsError: If no participant name remains after trimming
        NoValidExpensesError: If no well-formed expense remains
    """
    return settle(*prepare_calculation(participants, expenses))
