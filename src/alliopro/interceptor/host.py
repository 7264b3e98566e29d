"""Open pages governed by the interceptor.

:class:`ClientHost` stands in for the browser's client list.  Each open page
is a :class:`Client` whose ``controller`` names the cache generation serving
it, or ``None`` when no worker controls it yet.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from alliopro.exceptions import InvalidUsageError

logger = logging.getLogger(__name__)


@dataclass
class Client:
    """One open page."""

    url: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    controller: Optional[str] = None


class ClientHost:
    """Registry of open pages."""

    def __init__(self) -> None:
        self._clients: dict[str, Client] = {}

    def open(self, url: str) -> Client:
        """Register a newly opened page.  It starts uncontrolled."""
        client = Client(url=url)
        self._clients[client.id] = client
        return client

    def close(self, client_id: str) -> None:
        """Forget a page.  Unknown ids are ignored."""
        self._clients.pop(client_id, None)

    def get(self, client_id: str) -> Client:
        try:
            return self._clients[client_id]
        except KeyError:
            raise InvalidUsageError(f"Unknown client: {client_id}") from None

    def clients(self) -> list[Client]:
        return list(self._clients.values())

    async def claim(self, cache_name: str) -> list[Client]:
        """Put every open page under the generation *cache_name*.

        Pages already loaded switch controller without navigating.
        """
        claimed = list(self._clients.values())
        for client in claimed:
            client.controller = cache_name
        logger.debug("Generation %s claimed %d client(s)", cache_name, len(claimed))
        return claimed
