from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from studio.core.errors import AccountNotFound, InsufficientCredits
from studio.models import TransactionKind

from _fakes import USER, race


def _sum(ledger, user_id=USER) -> int:
    return sum(t.credits_change for t in ledger.transactions(user_id, limit=1000))


def test_open_account_grants_signup_credits_once(ledger) -> None:
    ledger.open_account(USER, email="owner@example.com", initial_credits=10)
    ledger.open_account(USER, email="other@example.com", initial_credits=10)

    assert ledger.balance(USER) == 10
    txns = ledger.transactions(USER)
    assert len(txns) == 1
    assert txns[0].kind == TransactionKind.PURCHASE
    assert txns[0].reference == f"signup:{USER}"
    # first email wins
    assert ledger.get_account(USER).email == "owner@example.com"


def test_open_account_fills_missing_contact_details(ledger) -> None:
    ledger.open_account(USER, initial_credits=0)
    account = ledger.open_account(USER, email="late@example.com", display_name="Late")

    assert account.email == "late@example.com"
    assert account.display_name == "Late"
    assert ledger.balance(USER) == 0


def test_balance_matches_transaction_log(ledger, account) -> None:
    ledger.debit(USER, 3, job_id="job_a")
    ledger.purchase(USER, 5, reference="pay_1")
    ledger.credit(USER, 3, kind=TransactionKind.REFUND, job_id="job_a")
    ledger.debit(USER, 4, job_id="job_b")

    assert ledger.balance(USER) == 10 - 3 + 5 + 3 - 4
    assert ledger.balance(USER) == _sum(ledger)
    assert ledger.transactions(USER)[0].balance_after == ledger.balance(USER)


def test_insufficient_debit_has_no_side_effects(ledger, account) -> None:
    before = len(ledger.transactions(USER))

    with pytest.raises(InsufficientCredits) as exc:
        ledger.debit(USER, 11, job_id="job_big")

    assert exc.value.details == {"required": 11, "current": 10}
    assert ledger.balance(USER) == 10
    assert len(ledger.transactions(USER)) == before


def test_debit_exact_balance_reaches_zero(ledger, account) -> None:
    txn = ledger.debit(USER, 10)
    assert txn.balance_after == 0
    with pytest.raises(InsufficientCredits):
        ledger.debit(USER, 1)


def test_unknown_account(ledger) -> None:
    with pytest.raises(AccountNotFound):
        ledger.balance("nobody")
    with pytest.raises(AccountNotFound):
        ledger.debit("nobody", 1)
    with pytest.raises(AccountNotFound):
        ledger.credit("nobody", 1)


def test_non_positive_amounts_rejected(ledger, account) -> None:
    with pytest.raises(ValueError):
        ledger.debit(USER, 0)
    with pytest.raises(ValueError):
        ledger.credit(USER, -2)


def test_purchase_is_idempotent_on_reference(ledger, account) -> None:
    first = ledger.purchase(USER, 5, reference="cs_test_123")
    second = ledger.purchase(USER, 5, reference="cs_test_123")

    assert first.id == second.id
    assert ledger.balance(USER) == 15
    assert ledger.balance(USER) == _sum(ledger)


def test_purchase_opens_account_without_signup_bonus(ledger) -> None:
    ledger.purchase("buyer", 20, reference="cs_test_456")

    assert ledger.balance("buyer") == 20
    assert len(ledger.transactions("buyer")) == 1


def test_second_refund_for_same_job_is_rejected(ledger, account) -> None:
    ledger.debit(USER, 4, job_id="job_x")
    ledger.credit(USER, 4, kind=TransactionKind.REFUND, job_id="job_x")

    with pytest.raises(IntegrityError):
        ledger.credit(USER, 4, kind=TransactionKind.REFUND, job_id="job_x")

    assert ledger.balance(USER) == 10
    assert ledger.balance(USER) == _sum(ledger)


def test_concurrent_debits_never_overdraw(ledger, account) -> None:
    results = race(8, lambda: ledger.debit(USER, 3))

    refused = [r for r in results if isinstance(r, InsufficientCredits)]
    assert len(refused) == 5
    assert ledger.balance(USER) == 1
    assert ledger.balance(USER) == _sum(ledger)
    assert all(t.balance_after >= 0 for t in ledger.transactions(USER, limit=1000))
