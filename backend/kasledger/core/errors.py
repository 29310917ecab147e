from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base for failures reported to the caller as one human-readable message."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    status_code = 400


class CategoryNotFound(LedgerError):
    status_code = 404

    def __init__(self, category_id: str | None) -> None:
        super().__init__(f"Kategori tidak ditemukan: {category_id}")
        self.category_id = category_id


class AccountNotFound(LedgerError):
    status_code = 404

    def __init__(self, account_id: int | None) -> None:
        super().__init__(f"Akun tidak ditemukan: {account_id}")
        self.account_id = account_id


class SubmissionNotFound(LedgerError):
    status_code = 404

    def __init__(self, submission_id: str) -> None:
        super().__init__(f"Submission not found: {submission_id}")
        self.submission_id = submission_id


class PersistenceError(LedgerError):
    status_code = 503

    def __init__(self, message: str, *, transaction_id: int | None = None) -> None:
        super().__init__(message)
        # Set when the transaction row was committed but monthly reconciliation failed.
        self.transaction_id = transaction_id


class ConcurrencyConflict(LedgerError):
    status_code = 409


class LedgerBusy(LedgerError):
    status_code = 409


class OpeningBalanceRequired(Exception):
    """Raised by the ledger when no balance precedes a transaction.

    Not a failure: the caller must collect one balance per active account for
    ``month_key`` and resubmit with them.
    """

    def __init__(self, month_key: str, accounts: list[dict[str, Any]]) -> None:
        super().__init__(f"Opening balance required for {month_key}")
        self.month_key = month_key
        self.accounts = accounts
