from __future__ import annotations

import pytest
from sqlalchemy.orm import sessionmaker

import studio.models  # noqa: F401
from studio.core.database import Base, make_engine
from studio.services.ledger import Ledger
from studio.workers.orchestrator import JobOrchestrator

from _fakes import USER, FakeClock, FakeGateway, FakeNotifier, FakeScheduler


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'studio.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def ledger(session_factory) -> Ledger:
    return Ledger(session_factory)


@pytest.fixture
def account(ledger):
    return ledger.open_account(USER, email="owner@example.com", initial_credits=10)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def orchestrator(session_factory, ledger, gateway, notifier, scheduler, clock) -> JobOrchestrator:
    return JobOrchestrator(
        gateway=gateway,
        ledger=ledger,
        notifier=notifier,
        scheduler=scheduler,
        session_factory=session_factory,
        sleep=clock.sleep,
        clock=clock,
        poll_interval=5,
        submit_retries=2,
        submit_retry_delay=0,
    )
