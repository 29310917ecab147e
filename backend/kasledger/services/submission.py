from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from kasledger.core.errors import LedgerBusy, LedgerError, OpeningBalanceRequired, SubmissionNotFound, ValidationError
from kasledger.services.ledger import LedgerEngine, SubmissionState, TransactionDraft

logger = logging.getLogger(__name__)

MAX_KEPT_SUBMISSIONS = 200


@dataclass
class Submission:
    id: str
    draft: TransactionDraft
    state: SubmissionState = SubmissionState.DRAFT
    error: str | None = None
    transaction_id: int | None = None
    saldo_kas: Decimal | None = None
    opening_month_key: str | None = None
    opening_accounts: list[dict[str, Any]] = field(default_factory=list)
    parked_at: float | None = None

    @property
    def awaiting_opening_balance(self) -> bool:
        return self.state is SubmissionState.AWAITING_OPENING_BALANCE


class SubmissionCoordinator:
    """Drives one transaction submission at a time through the ledger.

    A submission that needs opening balances is parked until the user answers
    or cancels the prompt; other submissions are refused meanwhile.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        *,
        pending_ttl_seconds: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._ttl = pending_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._submissions: OrderedDict[str, Submission] = OrderedDict()
        self._parked_id: str | None = None

    def get(self, submission_id: str) -> Submission:
        submission = self._submissions.get(submission_id)
        if submission is None:
            raise SubmissionNotFound(submission_id)
        return submission

    def submit(self, db: Session, draft: TransactionDraft) -> Submission:
        with self._lock:
            self._check_parked()
            submission = Submission(id=uuid.uuid4().hex, draft=draft)
            self._remember(submission)
            logger.info("Submission %s started for %s", submission.id, draft.name)
            return self._run(db, submission, None)

    def provide_opening_balances(self, db: Session, submission_id: str, balances: Mapping) -> Submission:
        with self._lock:
            submission = self._parked(submission_id)
            # Bad input keeps the prompt open.
            normalized = self._engine.normalize_opening_balances(balances)
            return self._run(db, submission, normalized)

    def cancel_opening_balances(self, db: Session, submission_id: str) -> Submission:
        """Resume the parked submission with every opening balance set to 0."""

        with self._lock:
            submission = self._parked(submission_id)
            logger.info("Opening balance prompt for %s cancelled; using 0 for every account", submission.opening_month_key)
            zeros = {a["accountId"]: Decimal("0") for a in submission.opening_accounts}
            return self._run(db, submission, zeros)

    def _run(self, db: Session, submission: Submission, balances: Mapping | None) -> Submission:
        def on_state(state: SubmissionState) -> None:
            submission.state = state

        submission.error = None
        try:
            tx = self._engine.record_transaction(db, submission.draft, opening_balances=balances, on_state=on_state)
        except OpeningBalanceRequired as signal:
            submission.state = SubmissionState.AWAITING_OPENING_BALANCE
            submission.opening_month_key = signal.month_key
            submission.opening_accounts = signal.accounts
            submission.parked_at = self._clock()
            self._parked_id = submission.id
            return submission
        except ValidationError as exc:
            self._release(submission)
            # A fixable input problem: the user edits the draft and resubmits.
            submission.state = SubmissionState.DRAFT
            submission.error = exc.message
            raise
        except LedgerError as exc:
            self._release(submission)
            submission.state = SubmissionState.FAILED
            submission.error = exc.message
            transaction_id = getattr(exc, "transaction_id", None)
            if transaction_id is not None:
                submission.transaction_id = transaction_id
            raise

        self._release(submission)
        submission.transaction_id = int(tx.id)
        submission.saldo_kas = tx.saldo_kas
        logger.info("Submission %s committed as transaction %s", submission.id, tx.id)
        return submission

    def _release(self, submission: Submission) -> None:
        if self._parked_id == submission.id:
            self._parked_id = None
        submission.parked_at = None

    def _parked(self, submission_id: str) -> Submission:
        submission = self.get(submission_id)
        if not submission.awaiting_opening_balance:
            raise ValidationError("Transaksi ini tidak sedang menunggu saldo awal")
        if self._expired(submission):
            self._expire(submission)
            raise ValidationError("Waktu pengisian saldo awal telah habis; silakan kirim ulang transaksi")
        return submission

    def _check_parked(self) -> None:
        if self._parked_id is None:
            return
        parked = self._submissions.get(self._parked_id)
        if parked is None or not parked.awaiting_opening_balance:
            self._parked_id = None
            return
        if self._expired(parked):
            self._expire(parked)
            return
        raise LedgerBusy("Masih ada transaksi yang menunggu pengisian saldo awal")

    def _expired(self, submission: Submission) -> bool:
        return submission.parked_at is not None and self._clock() - submission.parked_at > self._ttl

    def _expire(self, submission: Submission) -> None:
        logger.warning("Submission %s expired while awaiting opening balance", submission.id)
        self._release(submission)
        submission.state = SubmissionState.FAILED
        submission.error = "Waktu pengisian saldo awal telah habis"

    def _remember(self, submission: Submission) -> None:
        self._submissions[submission.id] = submission
        while len(self._submissions) > MAX_KEPT_SUBMISSIONS:
            oldest_id = next(iter(self._submissions))
            if oldest_id == self._parked_id:
                self._submissions.move_to_end(oldest_id)
                continue
            del self._submissions[oldest_id]
