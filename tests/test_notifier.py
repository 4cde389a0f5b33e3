from __future__ import annotations

import json

import httpx

from studio.models import JobKind, JobState
from studio.services.notifier import EmailNotifier

from _fakes import USER


def _notifier(session_factory, handler, api_key="re_test") -> EmailNotifier:
    return EmailNotifier(
        session_factory,
        api_key=api_key,
        from_email="Studio <studio@example.com>",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_success_email_lists_artifacts(session_factory, account) -> None:
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email_1"})

    _notifier(session_factory, handler).notify_terminal(
        USER, JobKind.GENERATE_VIDEO, JobState.SUCCEEDED, ["https://fal.media/v.mp4"]
    )

    assert len(sent) == 1
    assert sent[0]["to"] == ["owner@example.com"]
    assert sent[0]["subject"] == "Your video is ready"
    assert "https://fal.media/v.mp4" in sent[0]["html"]


def test_failure_email_mentions_refund(session_factory, account) -> None:
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email_2"})

    _notifier(session_factory, handler).notify_terminal(
        USER, JobKind.TRAIN, JobState.FAILED, error="<no faces>"
    )

    assert "refunded" in sent[0]["subject"]
    assert "&lt;no faces&gt;" in sent[0]["html"]


def test_sample_jobs_and_unknown_users_send_nothing(session_factory, account) -> None:
    calls = []
    notifier = _notifier(session_factory, lambda request: calls.append(request) or httpx.Response(200, json={}))

    notifier.notify_terminal(USER, JobKind.GENERATE_SAMPLE, JobState.SUCCEEDED, [])
    notifier.notify_terminal("stranger", JobKind.TRAIN, JobState.SUCCEEDED, [])

    assert calls == []


def test_delivery_errors_are_swallowed(session_factory, account) -> None:
    def handler(request):
        raise httpx.ConnectError("resend down")

    _notifier(session_factory, handler).notify_terminal(USER, JobKind.TRAIN, JobState.SUCCEEDED, [])


def test_unconfigured_notifier_only_logs(session_factory, account) -> None:
    calls = []
    notifier = _notifier(session_factory, lambda request: calls.append(request) or httpx.Response(200, json={}), api_key="")

    notifier.notify_terminal(USER, JobKind.TRAIN, JobState.SUCCEEDED, [])

    assert calls == []
