"""Service base class and the collaborator protocols the pipeline depends on.

The pipeline never talks to hikari directly. It depends on the small
protocols below, which the Discord adapter implements for production and the
test suite implements with in-memory fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Protocol
from typing import Sequence
from typing import runtime_checkable

from friendle.bot.services.models import Member
from friendle.bot.services.models import Message

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageChannel(Protocol):
    """A readable text channel or thread."""

    id: int
    last_message_id: int | None

    async def fetch_page(self, *, before: int | None, limit: int) -> list[Message]:
        """Return up to ``limit`` messages older than ``before``, newest first.

        Raises:
            ChannelUnreadable: If the channel cannot be read
        """
        ...


class GuildDirectory(Protocol):
    """Enumerates guilds, their members and their readable channels."""

    def guild_ids(self) -> Sequence[str]: ...

    async def fetch_members(self, guild_id: str) -> list[Member]: ...

    async def fetch_channels(self, guild_id: str) -> list[MessageChannel]: ...


class OptInRegistry(Protocol):
    """Read side of the opt-in list."""

    def is_opted_in(self, member_id: str) -> bool: ...

    def list(self) -> list[str]: ...


@dataclass
class ServiceHealth:
    service_name: str
    is_healthy: bool
    details: dict[str, Any] = field(default_factory=dict)


class BaseService:
    """Common lifecycle for bot services."""

    def __init__(self, service_name: str):
        self._service_name = service_name
        self._initialized = False

    @property
    def service_name(self) -> str:
        return self._service_name

    async def initialize(self) -> None:
        self._initialized = True
        logger.debug(f"{self._service_name} initialized")

    async def cleanup(self) -> None:
        self._initialized = False
        logger.debug(f"{self._service_name} cleaned up")

    async def health_check(self) -> ServiceHealth:
        return ServiceHealth(
            service_name=self._service_name,
            is_healthy=self._initialized,
            details={"initialized": self._initialized},
        )
