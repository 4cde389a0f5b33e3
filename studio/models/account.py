"""
Credit Models
Credit accounts and the append-only transaction log behind them.

The balance on ``CreditAccount`` must always equal the sum of
``credits_change`` over the account's transactions.
"""

from datetime import datetime
from sqlalchemy import (
    Column, String, Text, DateTime, Integer, CheckConstraint, UniqueConstraint,
)

from studio.core.database import Base


class TransactionKind:
    """Credit transaction kinds."""
    PURCHASE = "purchase"  # Bought or granted credits
    DEBIT = "debit"        # Reserved for a job or paid action
    REFUND = "refund"      # Compensation for a failed job


class CreditAccount(Base):
    """Per-user credit balance."""

    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_credit_accounts_balance_nonnegative"),
    )

    user_id = Column(String, primary_key=True)
    balance = Column(Integer, nullable=False, default=0)

    # Contact details used by the notifier
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CreditAccount {self.user_id} balance={self.balance}>"


class CreditTransaction(Base):
    """
    Immutable ledger entry.

    A job can own at most one debit and one refund, and a payment
    reference can be credited only once.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint("job_id", "kind", name="uq_credit_transactions_job_kind"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)

    kind = Column(String, nullable=False)
    credits_change = Column(Integer, nullable=False)  # Signed
    balance_after = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)

    # Links
    job_id = Column(String, nullable=True, index=True)
    reference = Column(String, nullable=True, unique=True)  # External payment id

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<CreditTransaction {self.id} {self.kind} {self.credits_change:+d}>"
