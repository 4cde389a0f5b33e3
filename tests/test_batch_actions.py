from __future__ import annotations

import pytest

from studio.core.errors import AlreadyUsed, JobTimeout, NotFound, RemoteFailure, UpscaleBlocksRemake
from studio.models import BatchRow, GenerationBatch, SubjectModel, TransactionKind
from studio.services.batch_actions import BatchActions
from studio.services.entitlements import BatchEntitlementTracker
from studio.services.job_specs import REMAKE_KIND, UPSCALE_KIND

from _fakes import RUNNING, USER, failed, race

ORIGINAL = [f"https://fal.media/orig_{i}.png" for i in range(4)]


@pytest.fixture
def batch_id(session_factory, account) -> int:
    db = session_factory()
    try:
        model = SubjectModel(
            user_id=USER, name="Rex", trigger_word="sks",
            lora_url="https://fal.media/lora.safetensors", training_images_count=8,
        )
        db.add(model)
        db.flush()
        batch = GenerationBatch(
            user_id=USER, model_id=model.id, scene_ids=["park-scene"],
            aspect_ratio="instagram-feed", credits_used=3,
        )
        batch.rows = [
            BatchRow(row_index=i, image_urls=list(ORIGINAL), prompt=f"row prompt {i}", scene_id="park-scene")
            for i in range(3)
        ]
        db.add(batch)
        db.commit()
        return batch.id
    finally:
        db.close()


@pytest.fixture
def actions(orchestrator, ledger, session_factory) -> BatchActions:
    return BatchActions(orchestrator, ledger=ledger, session_factory=session_factory, budget=10.0)


def _batch(session_factory, batch_id) -> GenerationBatch:
    db = session_factory()
    try:
        batch = db.query(GenerationBatch).filter(GenerationBatch.id == batch_id).one()
        batch.rows  # noqa: B018
        return batch
    finally:
        db.close()


def test_remake_replaces_row_once(actions, session_factory, ledger, batch_id, gateway) -> None:
    result = actions.remake(USER, batch_id, 1)

    assert result.free is True
    assert len(result.image_urls) == 4
    assert gateway.submitted[0].kind == REMAKE_KIND
    assert "row prompt 1" in gateway.submitted[0].payload["prompt"]

    batch = _batch(session_factory, batch_id)
    assert batch.remake_used is True
    assert batch.rows[1].image_urls == result.image_urls
    assert batch.rows[0].image_urls == ORIGINAL
    assert ledger.balance(USER) == 10

    with pytest.raises(AlreadyUsed):
        actions.remake(USER, batch_id, 2)
    assert len(gateway.submitted) == 1


def test_failed_remake_keeps_entitlement(actions, session_factory, batch_id, gateway) -> None:
    gateway.plan(failed("provider error"))

    with pytest.raises(RemoteFailure):
        actions.remake(USER, batch_id, 0)

    assert _batch(session_factory, batch_id).remake_used is False
    assert actions.remake(USER, batch_id, 0).image_urls


def test_remake_timeout_keeps_entitlement(actions, session_factory, batch_id, gateway) -> None:
    gateway.plan(RUNNING)

    with pytest.raises(JobTimeout):
        actions.remake(USER, batch_id, 0)

    assert _batch(session_factory, batch_id).remake_used is False


def test_first_upscale_free_then_paid(actions, session_factory, ledger, batch_id, gateway) -> None:
    first = actions.upscale(USER, batch_id, 0)
    second = actions.upscale(USER, batch_id, 1)

    assert (first.free, first.credits_charged) == (True, 0)
    assert (second.free, second.credits_charged) == (False, 1)
    assert ledger.balance(USER) == 9
    assert all(spec.kind == UPSCALE_KIND for spec in gateway.submitted)
    assert [spec.payload["image_url"] for spec in gateway.submitted[:4]] == ORIGINAL

    batch = _batch(session_factory, batch_id)
    assert batch.upscale_used is True
    assert batch.rows[0].image_urls == first.image_urls
    assert batch.rows[0].image_urls != ORIGINAL


def test_upscale_blocks_remake(actions, batch_id) -> None:
    actions.upscale(USER, batch_id, 0)

    with pytest.raises(UpscaleBlocksRemake):
        actions.remake(USER, batch_id, 0)


def test_remake_does_not_block_upscale(actions, ledger, batch_id) -> None:
    actions.remake(USER, batch_id, 0)
    result = actions.upscale(USER, batch_id, 0)

    assert result.free is True
    assert ledger.balance(USER) == 10


def test_partially_failed_upscale_keeps_originals(actions, batch_id, gateway) -> None:
    gateway.plan(failed())

    result = actions.upscale(USER, batch_id, 2)

    assert result.image_urls[0] == ORIGINAL[0]
    assert result.image_urls[1:] != ORIGINAL[1:]


def test_failed_paid_upscale_is_refunded(actions, session_factory, ledger, batch_id, gateway) -> None:
    actions.upscale(USER, batch_id, 0)
    for _ in range(4):
        gateway.plan(failed())

    with pytest.raises(RemoteFailure):
        actions.upscale(USER, batch_id, 1)

    assert ledger.balance(USER) == 10
    kinds = [t.kind for t in ledger.transactions(USER)]
    assert kinds.count(TransactionKind.REFUND) == 1
    assert _batch(session_factory, batch_id).rows[1].image_urls == ORIGINAL


def test_failed_free_upscale_still_counts(actions, session_factory, ledger, batch_id, gateway) -> None:
    for _ in range(4):
        gateway.plan(failed())

    with pytest.raises(RemoteFailure):
        actions.upscale(USER, batch_id, 0)

    assert _batch(session_factory, batch_id).upscale_used is True
    assert ledger.balance(USER) == 10
    assert actions.upscale(USER, batch_id, 0).credits_charged == 1


def test_other_users_batches_are_hidden(actions, ledger, batch_id) -> None:
    ledger.open_account("intruder", initial_credits=10)

    with pytest.raises(NotFound):
        actions.upscale("intruder", batch_id, 0)
    with pytest.raises(NotFound):
        actions.remake(USER, batch_id, 7)


def test_entitlement_transitions_are_single_use(session_factory, batch_id) -> None:
    tracker = BatchEntitlementTracker(session_factory)

    tracker.try_consume_remake(batch_id, 0, ORIGINAL)
    with pytest.raises(AlreadyUsed):
        tracker.try_consume_remake(batch_id, 0, ORIGINAL)

    assert tracker.try_consume_free_upscale(batch_id) is True
    assert tracker.try_consume_free_upscale(batch_id) is False
    with pytest.raises(NotFound):
        tracker.try_consume_free_upscale(9999)


def test_remake_after_upscale_reports_the_upscale(session_factory, batch_id) -> None:
    tracker = BatchEntitlementTracker(session_factory)
    tracker.try_consume_free_upscale(batch_id)

    with pytest.raises(UpscaleBlocksRemake):
        tracker.try_consume_remake(batch_id, 0, ORIGINAL)


def test_upscale_reads_row_after_claiming(actions, session_factory, batch_id, gateway, monkeypatch) -> None:
    remade = [f"https://fal.media/remade_{i}.png" for i in range(4)]
    claim = actions.tracker.try_consume_free_upscale

    def remake_lands_first(bid):
        actions.tracker.try_consume_remake(bid, 0, remade)
        return claim(bid)

    monkeypatch.setattr(actions.tracker, "try_consume_free_upscale", remake_lands_first)

    result = actions.upscale(USER, batch_id, 0)

    assert [spec.payload["image_url"] for spec in gateway.submitted] == remade
    assert _batch(session_factory, batch_id).rows[0].image_urls == result.image_urls


def test_concurrent_remakes_claim_once(session_factory, batch_id) -> None:
    tracker = BatchEntitlementTracker(session_factory)
    remade = [f"https://fal.media/remade_{i}.png" for i in range(4)]

    results = race(8, lambda: tracker.try_consume_remake(batch_id, 0, remade))

    assert results.count(None) == 1
    assert all(isinstance(r, AlreadyUsed) for r in results if r is not None)
    assert _batch(session_factory, batch_id).rows[0].image_urls == remade


def test_concurrent_first_upscales_get_one_free(session_factory, batch_id) -> None:
    tracker = BatchEntitlementTracker(session_factory)

    results = race(8, lambda: tracker.try_consume_free_upscale(batch_id))

    assert results.count(True) == 1
    assert results.count(False) == 7
