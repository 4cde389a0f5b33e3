"""
Credit Ledger
The only writer of credit balances.

Every balance change is a conditional UPDATE on the account row followed by
an append to the transaction log, inside one database transaction. Callers
that need the change to commit together with their own writes (the job
orchestrator inserting a job, or marking one failed) pass their session in;
otherwise the ledger opens and commits its own.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio.core.config import settings
from studio.core.database import SessionLocal
from studio.core.errors import AccountNotFound, InsufficientCredits
from studio.models import CreditAccount, CreditTransaction, TransactionKind

logger = logging.getLogger(__name__)


class Ledger:
    """Credit balances and their append-only transaction log."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _scope(self, session: Optional[Session]):
        """Yield (session, owned). Owned sessions are rolled back on error and closed."""
        if session is not None:
            yield session, False
            return

        db = self.session_factory()
        try:
            yield db, True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, user_id: str, session: Optional[Session] = None) -> Optional[CreditAccount]:
        with self._scope(session) as (db, _):
            return db.query(CreditAccount).filter(CreditAccount.user_id == user_id).first()

    def balance(self, user_id: str, session: Optional[Session] = None) -> int:
        """Current balance. Raises AccountNotFound for unknown users."""
        with self._scope(session) as (db, _):
            value = db.query(CreditAccount.balance).filter(
                CreditAccount.user_id == user_id
            ).scalar()
            if value is None:
                raise AccountNotFound(f"No credit account for user {user_id}")
            return value

    def transactions(
        self,
        user_id: str,
        limit: int = 50,
        session: Optional[Session] = None,
    ) -> List[CreditTransaction]:
        """Most recent transactions first."""
        with self._scope(session) as (db, _):
            return db.query(CreditTransaction).filter(
                CreditTransaction.user_id == user_id
            ).order_by(
                CreditTransaction.created_at.desc(), CreditTransaction.id.desc()
            ).limit(limit).all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def debit(
        self,
        user_id: str,
        amount: int,
        kind: str = TransactionKind.DEBIT,
        description: Optional[str] = None,
        job_id: Optional[str] = None,
        reference: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> CreditTransaction:
        """
        Subtract credits from a user's balance.

        Concurrent debits for the same user serialize on the account row: the
        balance check and the decrement are one statement, so two debits can
        never both pass against the same credits.

        Raises:
            InsufficientCredits: balance < amount. Nothing is written.
            AccountNotFound: the user has no account.
        """
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive, got {amount}")

        with self._scope(session) as (db, owned):
            updated = db.query(CreditAccount).filter(
                CreditAccount.user_id == user_id,
                CreditAccount.balance >= amount,
            ).update(
                {
                    CreditAccount.balance: CreditAccount.balance - amount,
                    CreditAccount.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )

            if updated == 0:
                current = db.query(CreditAccount.balance).filter(
                    CreditAccount.user_id == user_id
                ).scalar()
                if current is None:
                    raise AccountNotFound(f"No credit account for user {user_id}")
                logger.info(f"Debit refused for {user_id}: need {amount}, have {current}")
                raise InsufficientCredits(required=amount, balance=current)

            txn = self._append(
                db, user_id, kind, -amount, description, job_id=job_id, reference=reference
            )
            if owned:
                db.commit()
                db.refresh(txn)

            logger.info(f"Debited {amount} from {user_id} ({kind}, job={job_id}) -> {txn.balance_after}")
            return txn

    def credit(
        self,
        user_id: str,
        amount: int,
        kind: str = TransactionKind.REFUND,
        description: Optional[str] = None,
        job_id: Optional[str] = None,
        reference: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> CreditTransaction:
        """
        Add credits to a user's balance (purchases and refunds).

        Idempotency of refunds is the caller's concern; the (job_id, kind)
        unique constraint rejects a second refund for the same job.
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        with self._scope(session) as (db, owned):
            updated = db.query(CreditAccount).filter(
                CreditAccount.user_id == user_id,
            ).update(
                {
                    CreditAccount.balance: CreditAccount.balance + amount,
                    CreditAccount.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
            if updated == 0:
                raise AccountNotFound(f"No credit account for user {user_id}")

            txn = self._append(
                db, user_id, kind, amount, description, job_id=job_id, reference=reference
            )
            if owned:
                db.commit()
                db.refresh(txn)

            logger.info(f"Credited {amount} to {user_id} ({kind}, job={job_id}) -> {txn.balance_after}")
            return txn

    def purchase(
        self,
        user_id: str,
        credits: int,
        reference: str,
        description: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Credit a completed payment exactly once.

        Replaying the same payment reference returns the original transaction
        without changing the balance.
        """
        existing = self._by_reference(reference)
        if existing is not None:
            logger.info(f"Purchase {reference} already credited, skipping")
            return existing

        if self.get_account(user_id) is None:
            self.open_account(user_id, initial_credits=0)

        try:
            return self.credit(
                user_id,
                credits,
                kind=TransactionKind.PURCHASE,
                description=description or f"Purchased {credits} credits",
                reference=reference,
            )
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same payment
            existing = self._by_reference(reference)
            if existing is None:
                raise
            return existing

    def open_account(
        self,
        user_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        initial_credits: Optional[int] = None,
    ) -> CreditAccount:
        """
        Create the account on first sign-in and grant the signup credits.

        Safe to call repeatedly: an existing account is returned unchanged
        apart from filling in missing contact details.
        """
        if initial_credits is None:
            initial_credits = settings.SIGNUP_CREDITS

        db = self.session_factory()
        try:
            account = db.query(CreditAccount).filter(CreditAccount.user_id == user_id).first()
            if account is not None:
                changed = False
                if email and not account.email:
                    account.email = email
                    changed = True
                if display_name and not account.display_name:
                    account.display_name = display_name
                    changed = True
                if changed:
                    db.commit()
                    db.refresh(account)
                return account

            account = CreditAccount(
                user_id=user_id,
                balance=0,
                email=email,
                display_name=display_name,
            )
            db.add(account)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return db.query(CreditAccount).filter(CreditAccount.user_id == user_id).one()
        finally:
            db.close()

        logger.info(f"Opened credit account for {user_id}")
        if initial_credits > 0:
            self.purchase(
                user_id,
                initial_credits,
                reference=f"signup:{user_id}",
                description="Signup bonus",
            )
        return self.get_account(user_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(
        self,
        db: Session,
        user_id: str,
        kind: str,
        change: int,
        description: Optional[str],
        job_id: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> CreditTransaction:
        balance_after = db.query(CreditAccount.balance).filter(
            CreditAccount.user_id == user_id
        ).scalar()

        txn = CreditTransaction(
            user_id=user_id,
            kind=kind,
            credits_change=change,
            balance_after=balance_after,
            description=description,
            job_id=job_id,
            reference=reference,
        )
        db.add(txn)
        db.flush()
        return txn

    def _by_reference(self, reference: str) -> Optional[CreditTransaction]:
        db = self.session_factory()
        try:
            return db.query(CreditTransaction).filter(
                CreditTransaction.reference == reference
            ).first()
        finally:
            db.close()
