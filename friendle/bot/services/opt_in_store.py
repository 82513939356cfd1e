"""Flat-file opt-in registry and per-guild run history."""

from __future__ import annotations

import json
import logging
from datetime import UTC
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonOptInStore:
    """Opt-in list persisted as a small JSON document.

    File shape::

        {"optInUsers": [...], "lastRun": "...", "lastRunByGuild": {"<guild>": "YYYY-MM-DD"}}
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._opt_in_users: list[str] = []
        self._last_run: str | None = None
        self._last_run_by_guild: dict[str, str] = {}
        self.load()

    def load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not parse opt-in storage at {self.path}, using defaults: {e}")
            return

        self._opt_in_users = [str(uid) for uid in data.get("optInUsers") or []]
        self._last_run = data.get("lastRun")
        self._last_run_by_guild = dict(data.get("lastRunByGuild") or {})

    def save(self) -> None:
        data = {
            "optInUsers": self._opt_in_users,
            "lastRun": self._last_run,
            "lastRunByGuild": self._last_run_by_guild,
        }
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    # Registry protocol

    def is_opted_in(self, member_id: str) -> bool:
        return member_id in self._opt_in_users

    def list(self) -> list[str]:
        return list(self._opt_in_users)

    # Mutations driven by slash commands

    def opt_in(self, member_id: str) -> bool:
        """Add a member; returns False if they were already opted in."""
        if member_id in self._opt_in_users:
            return False
        self._opt_in_users.append(member_id)
        self.save()
        return True

    def opt_out(self, member_id: str) -> bool:
        if member_id not in self._opt_in_users:
            return False
        self._opt_in_users = [uid for uid in self._opt_in_users if uid != member_id]
        self.save()
        return True

    # Run history

    @property
    def last_run(self) -> str | None:
        return self._last_run

    def last_generated(self, guild_id: str) -> str | None:
        return self._last_run_by_guild.get(guild_id)

    def record_guild_run(self, guild_id: str, date_label: str | None) -> None:
        """Remember the date generated for a guild, or forget it when ``None``."""
        if date_label:
            self._last_run_by_guild[guild_id] = date_label
        else:
            self._last_run_by_guild.pop(guild_id, None)
        self.save()

    def record_run(self) -> None:
        self._last_run = datetime.now(UTC).isoformat()
        self.save()

    def clear_history(self, guild_id: str) -> None:
        self._last_run_by_guild.pop(guild_id, None)
        self._last_run = None
        self.save()
