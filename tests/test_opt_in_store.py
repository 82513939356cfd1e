"""Tests for the JSON opt-in registry."""

import json

from friendle.bot.services.opt_in_store import JsonOptInStore


class TestJsonOptInStore:
    def test_opt_in_persists(self, tmp_path):
        path = tmp_path / "bot_storage.json"
        store = JsonOptInStore(path)

        assert store.opt_in("1")
        assert not store.opt_in("1")
        assert store.opt_in("2")

        reloaded = JsonOptInStore(path)
        assert reloaded.list() == ["1", "2"]
        assert reloaded.is_opted_in("2")
        assert json.loads(path.read_text())["optInUsers"] == ["1", "2"]

    def test_opt_out(self, tmp_path):
        store = JsonOptInStore(tmp_path / "s.json")
        store.opt_in("1")

        assert store.opt_out("1")
        assert not store.opt_out("1")
        assert not store.is_opted_in("1")

    def test_unreadable_file_uses_defaults(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text("{broken", encoding="utf-8")

        store = JsonOptInStore(path)

        assert store.list() == []
        assert store.last_run is None

    def test_guild_run_history(self, tmp_path):
        path = tmp_path / "s.json"
        store = JsonOptInStore(path)

        store.record_guild_run("g1", "2024-01-01")
        store.record_guild_run("g2", "2024-01-01")
        store.record_guild_run("g2", None)
        store.record_run()

        reloaded = JsonOptInStore(path)
        assert reloaded.last_generated("g1") == "2024-01-01"
        assert reloaded.last_generated("g2") is None
        assert reloaded.last_run is not None

        reloaded.clear_history("g1")
        assert reloaded.last_generated("g1") is None
        assert reloaded.last_run is None
        assert json.loads(path.read_text())["lastRunByGuild"] == {}
