"""Tests for the application event log."""

import logging

from app.services.event_log import ERRORS, EVENTS, EventLog, log_key
from app.store.backend import InMemoryBackend


async def test_unsaved_event_is_only_logged(backend: InMemoryBackend, caplog):
    events = EventLog(backend, retention_seconds=60)
    with caplog.at_level(logging.INFO, logger="sesame"):
        result = await events.add(EVENTS, "ping", "hello")
    assert result.value == {"logAdded": True}
    assert "[events] ping: hello" in caplog.text
    assert not await backend.exists(log_key(EVENTS))


async def test_errors_are_logged_as_warnings(backend: InMemoryBackend, caplog):
    events = EventLog(backend, retention_seconds=60)
    with caplog.at_level(logging.INFO, logger="sesame"):
        await events.add(ERRORS, "boom", "failed")
    assert caplog.records[-1].levelno == logging.WARNING


async def test_saved_events_are_kept_with_retention(backend: InMemoryBackend):
    events = EventLog(backend, retention_seconds=60)
    await events.add(EVENTS, "first", "one", save=True, userId="u1")
    await events.add(EVENTS, "second", "two", save=True)

    saved = (await events.get_all(EVENTS)).value
    assert [e["event"] for e in saved] == ["first", "second"]
    assert saved[0]["userId"] == "u1"
    assert 0 < await backend.ttl(log_key(EVENTS)) <= 60


async def test_types_are_kept_apart(backend: InMemoryBackend):
    events = EventLog(backend, retention_seconds=60)
    await events.add(ERRORS, "boom", "failed", save=True)
    assert (await events.get_all(EVENTS)).value == []
    assert len((await events.get_all(ERRORS)).value) == 1


async def test_delete_all(backend: InMemoryBackend):
    events = EventLog(backend, retention_seconds=60)
    await events.add(EVENTS, "first", "one", save=True)
    await events.add(EVENTS, "second", "two", save=True)
    result = (await events.delete_all(EVENTS)).value
    assert result == {"logsDeleted": True, "count": 2}
    assert (await events.get_all(EVENTS)).value == []
