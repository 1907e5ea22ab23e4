"""Service lifespan: the watcher starts with the app and is closed on shutdown."""

import dataclasses

import pytest
from fastapi.testclient import TestClient

import main
from x402watch.discovery import RouterLink

from conftest import ALPHA


@pytest.fixture
def service_watcher(monkeypatch, watcher):
    monkeypatch.setattr(main, "create_watcher", lambda config: watcher)
    return watcher


class TestLifespan:
    def test_watcher_runs_while_app_is_up(self, config, service_watcher, directory, reader, notifier):
        directory.links = [RouterLink(ALPHA, "Alpha")]
        reader.set(ALPHA, 2_500_000)

        with TestClient(main.create_service_app(config)) as client:
            assert client.get("/health").json() == {"status": "ok"}

        assert directory.fetch_calls == 1
        assert service_watcher.seeded is True
        assert service_watcher.registry.get(ALPHA).last_balance == 2_500_000
        assert service_watcher.running is False
        assert directory.closed is True
        notifier.close.assert_awaited_once()
        notifier.deliver.assert_not_awaited()

    def test_disabled_watcher_is_never_started(self, config, service_watcher, directory, notifier):
        config = dataclasses.replace(config, enabled=False)

        with TestClient(main.create_service_app(config)) as client:
            assert client.get("/status").json() == {"running": False, "error": "Watcher is not enabled"}

        assert directory.fetch_calls == 0
        assert service_watcher.seeded is False
        assert directory.closed is True
        notifier.close.assert_awaited_once()
