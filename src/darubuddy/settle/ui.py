"""Interactive UI components for entering participants and expenses."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..models import ExpenseEntry

logger = logging.getLogger(__name__)


class ParticipantCompleter(Completer):
    """Fuzzy search completer for participant names.

    Completes the text after the last comma, so it works both for a single
    payer and for a comma-separated list of sharers.
    """

    def __init__(self, participants: list[str]):
        """Initialize the completer with the current participants."""
        self.participants = participants

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions for the current list item."""
        current = document.text_before_cursor.split(",")[-1]
        query = current.strip().lower()

        for name in self.participants:
            if not query or self._fuzzy_match(query, name.lower()):
                yield Completion(
                    text=name,
                    start_position=-len(current.lstrip()),
                    display=name,
                )

    def _fuzzy_match(self, query: str, text: str) -> bool:
        """
        Fuzzy match: all characters in query must appear in order in text.

        Example:
            query="fr2" matches "Friend 2"
        """
        query_idx = 0
        for char in text:
            if query_idx < len(query) and char == query[query_idx]:
                query_idx += 1
        return query_idx == len(query)


def default_participant_names(count: int, prefix: str) -> list[str]:
    """Seed names for a fresh session: "Friend 1", "Friend 2", ..."""
    return [f"{prefix} {i + 1}" for i in range(count)]


def parse_shared_by(text: str, participants: list[str]) -> tuple[list[str], list[str]]:
    """
    Parse a comma-separated sharer list.

    A blank answer means everyone shares, matching the form where every
    sharer box starts ticked.

    Returns:
        Tuple of (known names, unknown names)
    """
    names = [part.strip() for part in text.split(",") if part.strip()]
    if not names:
        return list(participants), []

    known = [name for name in names if name in participants]
    unknown = [name for name in names if name not in participants]
    return list(dict.fromkeys(known)), unknown


def prompt_participants(default_names: list[str]) -> list[str] | None:
    """
    Ask for participant names one per line.

    The first prompts are pre-filled with the default names. An empty answer
    once the defaults are used up finishes the list.

    Returns:
        Entered names, or None if cancelled
    """
    print("\n👥 Participants (empty line to finish)\n")

    session: PromptSession[str] = PromptSession()
    names: list[str] = []

    try:
        while True:
            idx = len(names)
            default = default_names[idx] if idx < len(default_names) else ""
            result = session.prompt(f"Participant {idx + 1}: ", default=default)

            if not result.strip():
                return names

            if result.strip() in names:
                print(f"❌ {result.strip()} is already in the group.")
                continue

            names.append(result.strip())

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return names


def _prompt_payer(session: PromptSession[str], participants: list[str]) -> str:
    """Loop until the payer is one of the participants."""
    while True:
        result = session.prompt(
            "Paid by: ", default=participants[0], complete_while_typing=True
        ).strip()
        if result in participants:
            return result
        print("❌ Unknown participant. Press Tab to complete.")


def _prompt_shared_by(session: PromptSession[str], participants: list[str]) -> list[str]:
    """Loop until every sharer is a participant."""
    while True:
        result = session.prompt(
            "Shared by (comma-separated, empty = everyone): ",
            complete_while_typing=True,
        )
        known, unknown = parse_shared_by(result, participants)
        if not unknown:
            return known
        print(f"❌ Not in the group: {', '.join(unknown)}")


def prompt_expenses(
    participants: list[str], currency_symbol: str = "₹"
) -> list[ExpenseEntry] | None:
    """
    Ask for expenses until an empty amount is entered.

    Amounts are not checked here; the settlement engine skips any entry
    without a positive amount.

    Returns:
        Entered expenses, or None if cancelled
    """
    print("\n🧾 Expenses (empty amount to finish)\n")

    plain: PromptSession[str] = PromptSession()
    names: PromptSession[str] = PromptSession(
        completer=ParticipantCompleter(participants)
    )
    entries: list[ExpenseEntry] = []

    try:
        while True:
            amount = plain.prompt(f"Amount ({currency_symbol}): ").strip()
            if not amount:
                return entries

            description = plain.prompt("Description (e.g. Beer): ")
            payer = _prompt_payer(names, participants)
            shared_by = _prompt_shared_by(names, participants)

            entries.append(
                ExpenseEntry(
                    description=description,
                    amount=amount,
                    payer=payer,
                    shared_by=shared_by,
                )
            )
            logger.debug(f"Entered expense {description!r} paid by {payer}")
            print()

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return None
    except EOFError:
        return entries
