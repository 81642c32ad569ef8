"""Custom exceptions for Darubuddy."""


class DarubuddyError(Exception):
    """Base exception for all Darubuddy errors."""

    pass


class ConfigurationError(DarubuddyError):
    """Raised when configuration is invalid or missing."""

    pass


class NoParticipantsError(DarubuddyError):
    """Raised when a calculation is requested without any participants."""

    def __init__(self, message: str | None = None):
        super().__init__(message or "Please add at least one participant.")


class NoValidExpensesError(DarubuddyError):
    """Raised when no expense is left after dropping malformed entries."""

    def __init__(self, dropped: int = 0, message: str | None = None):
        self.dropped = dropped
        super().__init__(
            message or "Please add at least one expense with an amount."
        )


class HistoryError(DarubuddyError):
    """Raised when a saved or imported calculation record cannot be read."""

    pass
