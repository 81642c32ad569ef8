"""Tests for the settlement engine: aggregation, nets and debt reduction."""

import logging
import random
from decimal import Decimal

import pytest

from darubuddy.exceptions import NoParticipantsError, NoValidExpensesError
from darubuddy.models import Expense, ExpenseEntry, NetBalance
from darubuddy.settle.engine import (
    aggregate_balances,
    apply_transfers,
    compute_net_balances,
    compute_settlement,
    filter_valid_expenses,
    normalize_participants,
    prepare_calculation,
    reduce_debts,
    settle,
)


def make_expense(amount: str, payer: str, shared_by: list[str], description=None):
    """Create a validated expense for testing."""
    return Expense(
        description=description,
        amount=Decimal(amount),
        payer=payer,
        shared_by=shared_by,
    )


def nets_of(result) -> dict[str, Decimal]:
    return {n.name: n.net for n in result.totals}


def transfers_of(result) -> list[tuple[str, str, Decimal]]:
    return [(t.from_, t.to, t.amount) for t in result.settlement]


class TestScenarios:
    """End-to-end settlements for small groups."""

    def test_two_people_one_expense(self):
        result = compute_settlement(["A", "B"], [make_expense("100", "A", ["A", "B"])])

        assert nets_of(result) == {"A": Decimal("50.00"), "B": Decimal("-50.00")}
        assert transfers_of(result) == [("B", "A", Decimal("50.00"))]
        assert result.total_spent == Decimal("100.00")

    def test_three_people_two_payers(self):
        """C's debt is paid to A first, the rest to B."""
        result = compute_settlement(
            ["A", "B", "C"],
            [
                make_expense("100", "A", ["A", "B", "C"]),
                make_expense("60", "B", ["A", "B", "C"]),
            ],
        )

        assert nets_of(result) == {
            "A": Decimal("46.67"),
            "B": Decimal("6.67"),
            "C": Decimal("-53.33"),
        }
        assert transfers_of(result) == [
            ("C", "A", Decimal("46.67")),
            ("C", "B", Decimal("6.66")),
        ]
        assert result.total_spent == Decimal("160.00")

    def test_single_participant_is_settled(self):
        result = compute_settlement(["A"], [make_expense("50", "A", ["A"])])

        assert nets_of(result) == {"A": Decimal("0.00")}
        assert result.settlement == []

    def test_all_amounts_invalid(self):
        entries = [
            ExpenseEntry(amount="0", payer="A", shared_by=["A", "B"]),
            ExpenseEntry(amount="-5", payer="B", shared_by=["A", "B"]),
        ]

        with pytest.raises(NoValidExpensesError) as exc_info:
            compute_settlement(["A", "B"], entries)

        assert exc_info.value.dropped == 2

    def test_no_participants(self):
        with pytest.raises(NoParticipantsError):
            compute_settlement([], [make_expense("10", "A", ["A"])])

    def test_blank_participants_count_as_none(self):
        with pytest.raises(NoParticipantsError):
            compute_settlement(["", "   ", None], [])

    def test_three_debtors_one_creditor(self):
        result = compute_settlement(
            ["A", "B", "C", "D"],
            [make_expense("90", "A", ["A", "B", "C", "D"])],
        )

        assert transfers_of(result) == [
            ("B", "A", Decimal("22.50")),
            ("C", "A", Decimal("22.50")),
            ("D", "A", Decimal("22.50")),
        ]
        remaining = apply_transfers(result.totals, result.settlement)
        assert all(amount == 0 for amount in remaining.values())


class TestAggregation:
    """Tests for paid/owed folding."""

    def test_everyone_starts_at_zero(self):
        balances = aggregate_balances(["A", "B", "C"], [make_expense("10", "A", ["B"])])

        assert balances["C"].paid == 0
        assert balances["C"].owed == 0

    def test_payer_outside_sharers_owes_nothing(self):
        balances = aggregate_balances(["A", "B"], [make_expense("40", "A", ["B"])])

        assert balances["A"].paid == Decimal("40")
        assert balances["A"].owed == 0
        assert balances["B"].owed == Decimal("40")

    def test_shares_accumulate(self):
        balances = aggregate_balances(
            ["A", "B"],
            [
                make_expense("10", "A", ["A", "B"]),
                make_expense("30", "B", ["A", "B"]),
            ],
        )

        assert balances["A"].paid == Decimal("10")
        assert balances["A"].owed == Decimal("20")
        assert balances["B"].paid == Decimal("30")
        assert balances["B"].owed == Decimal("20")


class TestNetCalculation:
    """Tests for rounding and ordering of nets."""

    def test_order_follows_participants(self):
        names = ["Zoe", "Adam", "Mia"]
        balances = aggregate_balances(names, [make_expense("30", "Mia", names)])

        nets = compute_net_balances(names, balances)

        assert [n.name for n in nets] == names
        assert [n.net for n in nets] == [
            Decimal("-10.00"),
            Decimal("-10.00"),
            Decimal("20.00"),
        ]

    def test_thirds_round_to_cents(self):
        names = ["A", "B", "C"]
        balances = aggregate_balances(names, [make_expense("10", "A", names)])

        nets = compute_net_balances(names, balances)

        assert [n.net for n in nets] == [
            Decimal("6.67"),
            Decimal("-3.33"),
            Decimal("-3.33"),
        ]


class TestDebtReduction:
    """Tests for the greedy two-cursor matching."""

    def test_no_debtors_no_transfers(self):
        nets = [NetBalance(name="A", net=Decimal("0")), NetBalance(name="B", net=Decimal("0"))]

        assert reduce_debts(nets) == []

    def test_one_cent_is_settled(self):
        nets = [
            NetBalance(name="A", net=Decimal("0.01")),
            NetBalance(name="B", net=Decimal("-0.01")),
        ]

        assert reduce_debts(nets) == []

    def test_matching_follows_input_order(self):
        """The first debtor pays the first creditor, regardless of size."""
        nets = [
            NetBalance(name="D1", net=Decimal("-10")),
            NetBalance(name="C1", net=Decimal("5")),
            NetBalance(name="D2", net=Decimal("-20")),
            NetBalance(name="C2", net=Decimal("25")),
        ]

        transfers = [(t.from_, t.to, t.amount) for t in reduce_debts(nets)]

        assert transfers == [
            ("D1", "C1", Decimal("5")),
            ("D1", "C2", Decimal("5")),
            ("D2", "C2", Decimal("20")),
        ]

    def test_equal_amounts_advance_both_cursors(self):
        nets = [
            NetBalance(name="A", net=Decimal("-15")),
            NetBalance(name="B", net=Decimal("-5")),
            NetBalance(name="C", net=Decimal("15")),
            NetBalance(name="D", net=Decimal("5")),
        ]

        transfers = [(t.from_, t.to, t.amount) for t in reduce_debts(nets)]

        assert transfers == [("A", "C", Decimal("15")), ("B", "D", Decimal("5"))]

    def test_creditors_run_out_first(self):
        """Leftover debt below a cent does not produce a transfer."""
        nets = [
            NetBalance(name="A", net=Decimal("-10.01")),
            NetBalance(name="B", net=Decimal("10.00")),
        ]

        transfers = [(t.from_, t.to, t.amount) for t in reduce_debts(nets)]

        assert transfers == [("A", "B", Decimal("10.00"))]


class TestFiltering:
    """Tests for dropping malformed expense entries."""

    def test_drops_malformed_entries(self):
        entries = [
            {"amount": "abc", "payer": "A", "sharedBy": ["A"]},
            {"amount": 10, "payer": "", "sharedBy": ["A"]},
            {"amount": 10, "payer": "A", "sharedBy": []},
            {"amount": 10, "payer": "Nobody", "sharedBy": ["A"]},
            {"amount": 10, "payer": "A", "sharedBy": ["A", "Ghost"]},
            {"amount": 12.5, "payer": "B", "sharedBy": ["A", "B"]},
        ]

        expenses = filter_valid_expenses(entries, ["A", "B"])

        assert len(expenses) == 1
        assert expenses[0].amount == Decimal("12.5")
        assert expenses[0].description == "Expense"

    def test_sharers_are_trimmed_and_deduplicated(self):
        entries = [ExpenseEntry(amount="9", payer=" A ", shared_by=["A", " B", "A"])]

        expenses = filter_valid_expenses(entries, ["A", "B"])

        assert expenses[0].payer == "A"
        assert expenses[0].shared_by == ["A", "B"]

    def test_duplicate_participants_collapse(self):
        assert normalize_participants([" A", "B", "A ", ""]) == ["A", "B"]

    def test_duplicate_names_counted_once(self):
        result = compute_settlement(
            ["A", "B", "A"], [make_expense("100", "A", ["A", "B"])]
        )

        assert [n.name for n in result.totals] == ["A", "B"]
        assert transfers_of(result) == [("B", "A", Decimal("50.00"))]

    def test_only_valid_expenses_count_towards_total(self):
        result = compute_settlement(
            ["A", "B"],
            [
                ExpenseEntry(amount="20", payer="A", shared_by=["A", "B"]),
                ExpenseEntry(amount="-20", payer="B", shared_by=["A", "B"]),
            ],
        )

        assert result.total_spent == Decimal("20.00")

    @pytest.mark.parametrize(
        "bad",
        [
            {"amount": 10, "payer": "A", "sharedBy": "A"},
            {"description": 5, "amount": 10, "payer": "A", "sharedBy": ["A", "B"]},
            {"amount": 10, "payer": 7, "sharedBy": ["A", "B"]},
            {"amount": 10, "payer": "A", "sharedBy": [None]},
            "not an expense",
            None,
        ],
    )
    def test_wrongly_typed_entry_is_dropped(self, bad, caplog):
        """One unparseable entry is skipped, the rest still settle."""
        good = {"amount": 100, "payer": "A", "sharedBy": ["A", "B"]}

        with caplog.at_level(logging.WARNING, logger="darubuddy.settle.engine"):
            result = compute_settlement(["A", "B"], [good, bad])

        assert transfers_of(result) == [("B", "A", Decimal("50.00"))]
        assert "Dropping expense #2" in caplog.text

    def test_wrongly_typed_entries_only(self):
        with pytest.raises(NoValidExpensesError) as exc_info:
            compute_settlement(["A"], [{"amount": 10, "payer": "A", "sharedBy": "A"}])

        assert exc_info.value.dropped == 1

    @pytest.mark.parametrize("amount", ["1e15", "1e30", 1e30, "123456789012345678901234567890"])
    def test_huge_amount_is_dropped(self, amount, caplog):
        entries = [
            {"amount": amount, "payer": "A", "sharedBy": ["A", "B"]},
            {"amount": "30", "payer": "B", "sharedBy": ["A", "B"]},
        ]

        with caplog.at_level(logging.WARNING, logger="darubuddy.settle.engine"):
            result = compute_settlement(["A", "B"], entries)

        assert result.total_spent == Decimal("30.00")
        assert transfers_of(result) == [("A", "B", Decimal("15.00"))]
        assert "too large" in caplog.text

    def test_largest_accepted_amount_rounds(self):
        result = compute_settlement(
            ["A", "B", "C"],
            [{"amount": "999999999999999.99", "payer": "A", "sharedBy": ["A", "B", "C"]}],
        )

        assert nets_of(result) == {
            "A": Decimal("666666666666666.66"),
            "B": Decimal("-333333333333333.33"),
            "C": Decimal("-333333333333333.33"),
        }

    def test_prepare_then_settle_matches_compute(self):
        entries = [
            {"amount": "45", "payer": "B", "sharedBy": ["A", "B", "C"]},
            {"amount": "abc", "payer": "A", "sharedBy": ["A"]},
        ]

        names, valid = prepare_calculation([" A", "B", "C", "B"], entries)

        assert names == ["A", "B", "C"]
        assert [e.amount for e in valid] == [Decimal("45")]
        assert settle(names, valid) == compute_settlement(names, entries)


def random_group(seed: int) -> tuple[list[str], list[Expense]]:
    """Build a reproducible random group with random expenses."""
    rng = random.Random(seed)
    names = [f"P{i}" for i in range(rng.randint(2, 4))]
    expenses = []
    for _ in range(rng.randint(1, 8)):
        sharers = rng.sample(names, rng.randint(1, len(names)))
        expenses.append(
            Expense(
                amount=Decimal(rng.randint(1, 100_000)) / 100,
                payer=rng.choice(names),
                shared_by=sharers,
            )
        )
    return names, expenses


@pytest.mark.parametrize("seed", range(25))
class TestSettlementProperties:
    """Invariants that must hold for any group."""

    def test_nets_sum_to_zero(self, seed):
        names, expenses = random_group(seed)
        result = compute_settlement(names, expenses)

        # Each net is rounded separately, so allow half a cent per person
        drift = abs(sum(n.net for n in result.totals))
        assert drift <= Decimal("0.005") * len(names)

    def test_transfers_clear_all_debts(self, seed):
        names, expenses = random_group(seed)
        result = compute_settlement(names, expenses)

        remaining = apply_transfers(result.totals, result.settlement)

        for amount in remaining.values():
            assert abs(amount) <= Decimal("0.01") * len(names)

    def test_transfers_are_positive_and_between_different_people(self, seed):
        names, expenses = random_group(seed)
        result = compute_settlement(names, expenses)

        for transfer in result.settlement:
            assert transfer.amount > 0
            assert transfer.from_ != transfer.to

    def test_expense_order_does_not_change_nets(self, seed):
        names, expenses = random_group(seed)
        shuffled = list(expenses)
        random.Random(seed + 1000).shuffle(shuffled)

        assert compute_settlement(names, expenses).totals == compute_settlement(
            names, shuffled
        ).totals

    def test_repeated_calls_are_identical(self, seed):
        names, expenses = random_group(seed)

        first = compute_settlement(names, expenses)
        second = compute_settlement(names, expenses)

        assert first.model_dump_json(by_alias=True) == second.model_dump_json(
            by_alias=True
        )
