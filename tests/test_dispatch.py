import httpx

from ghostnotes.config.settings import get_settings
from ghostnotes.domain.models import NotificationIntent
from ghostnotes.notify.dispatch import DirectDispatcher, ServiceWorkerDispatcher, select_dispatcher

INTENT = NotificationIntent(note_id="n1", title="Note nearby", body="hi")


def _settings_with_relay(url):
    settings = get_settings()
    dispatch = settings.dispatch.model_copy(update={"relay_url": url, "relay_secret": "secret"})
    return settings.model_copy(update={"dispatch": dispatch})


def test_select_prefers_relay_when_configured():
    settings = _settings_with_relay("https://example.test/api/notify")
    dispatcher = select_dispatcher(settings, permission="granted", show=lambda t, b: None)
    try:
        assert isinstance(dispatcher, ServiceWorkerDispatcher)
        assert dispatcher.available
    finally:
        dispatcher.close()


def test_select_falls_back_to_direct_then_none():
    settings = _settings_with_relay(None)
    assert isinstance(select_dispatcher(settings, permission="granted", show=lambda t, b: None), DirectDispatcher)
    assert select_dispatcher(settings, permission="granted") is None


def test_direct_dispatcher_requires_permission():
    shown = []
    granted = DirectDispatcher(lambda t, b: shown.append((t, b)), permission="granted")
    denied = DirectDispatcher(lambda t, b: shown.append((t, b)), permission="denied")

    denied.dispatch("u1", INTENT)
    granted.dispatch("u1", INTENT)
    assert not denied.available
    assert shown == [("Note nearby", "hi")]


def test_direct_dispatcher_swallows_errors():
    def show(_title, _body):
        raise RuntimeError("no display")

    # Must not raise: a broken display never takes down the notifier.
    DirectDispatcher(show).dispatch("u1", INTENT)


def test_service_worker_dispatcher_posts_relay_payload(monkeypatch):
    calls = []

    def fake_post_json(url, *, payload, headers=None, timeout_seconds=10):
        calls.append((url, payload, headers, timeout_seconds))
        return {"success": True}

    monkeypatch.setattr("ghostnotes.notify.dispatch.post_json", fake_post_json)
    dispatcher = ServiceWorkerDispatcher("https://example.test/api/notify", secret="s3", timeout_seconds=3)
    dispatcher.dispatch("u1", INTENT)
    dispatcher.close()

    assert calls == [
        (
            "https://example.test/api/notify",
            {"userId": "u1", "title": "Note nearby", "body": "hi", "data": {"noteId": "n1"}},
            {"Authorization": "Bearer s3"},
            3,
        )
    ]
    assert not dispatcher.available


def test_service_worker_dispatcher_logs_relay_errors(monkeypatch, caplog):
    def failing_post_json(url, **_kwargs):
        request = httpx.Request("POST", url)
        response = httpx.Response(404, request=request)
        raise httpx.HTTPStatusError("404", request=request, response=response)

    monkeypatch.setattr("ghostnotes.notify.dispatch.post_json", failing_post_json)
    dispatcher = ServiceWorkerDispatcher("https://example.test/api/notify")
    dispatcher.dispatch("u1", INTENT)
    dispatcher.close()

    assert "Push relay delivery failed" in caplog.text


def test_service_worker_dispatcher_rate_limits(monkeypatch):
    calls = []
    monkeypatch.setattr("ghostnotes.notify.dispatch.post_json", lambda url, **kw: calls.append(kw["payload"]))
    dispatcher = ServiceWorkerDispatcher("https://example.test/api/notify", max_per_minute=2)
    for _ in range(5):
        dispatcher.dispatch("u1", INTENT)
    # Excess pushes inside the window are dropped, not queued.
    dispatcher.close()
    assert len(calls) == 2


def test_service_worker_dispatcher_without_permission_sends_nothing(monkeypatch):
    calls = []
    monkeypatch.setattr("ghostnotes.notify.dispatch.post_json", lambda url, **kw: calls.append(kw))
    dispatcher = ServiceWorkerDispatcher("https://example.test/api/notify", permission="default")
    assert not dispatcher.available
    dispatcher.dispatch("u1", INTENT)
    dispatcher.close()
    assert calls == []
