class LedgerError(Exception):
    """Base class for every error raised by the fuel ledger."""


class ValidationError(LedgerError):
    """Bad or missing operator input; nothing was changed."""


class FormatError(LedgerError):
    """An import document does not have the expected structure."""


class PersistenceError(LedgerError):
    """A storage backend failed to read or write."""


class ConfirmationRequired(LedgerError):
    """The operation needs an explicit operator confirmation to proceed."""
