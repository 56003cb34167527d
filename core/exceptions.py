"""
Error taxonomy for the ledger core.

Row-level parse problems are collected into result objects by the parsers and
the importer. Everything below is raised to the caller untouched.
"""


class LedgerError(Exception):
    """Base class for ledger and bank-import failures."""


class ParseError(LedgerError):
    pass


class UnsupportedFormatError(ParseError):
    pass


class EmptyResultError(ParseError):
    """The file parsed, but produced zero valid transactions."""

    def __init__(self, message="No valid transactions found in statement.", skipped=0):
        super().__init__(message)
        self.skipped = skipped


class UnbalancedEntryError(LedgerError):
    def __init__(self, total_debit, total_credit, message=None):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            message
            or f"Unbalanced journal entry (debits={total_debit}, credits={total_credit})."
        )


class AlreadyPostedError(LedgerError):
    pass


class SystemAccountNotFoundError(LedgerError):
    def __init__(self, role, message=None):
        self.role = role
        super().__init__(message or f"No active account found for system role '{role}'.")


class AmbiguousSystemAccountError(LedgerError):
    def __init__(self, role, candidates):
        self.role = role
        self.candidates = list(candidates)
        codes = ", ".join(str(acc) for acc in self.candidates)
        super().__init__(
            f"More than one active account matches system role '{role}': {codes}. "
            "Bind the role to a single account."
        )


class ImmutableEntryError(LedgerError):
    pass


class ProtectedRuleError(LedgerError):
    pass
