"""
Change feed — PostgreSQL LISTEN/NOTIFY bridged to the broadcaster.

Triggers installed by the migrations publish
``{"entity": <table>, "action": <INSERT|UPDATE|DELETE>, "id": <row id>}``
on the ``data_change`` channel after every committed row change.  One
dedicated asyncpg connection per process listens on that channel.

The connection is not re-established when the server drops it: the loss
is logged and real-time updates stop until the process restarts (or
``start()`` is called again).
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import asyncpg

from worksync.core.config import settings
from worksync.core.tasks import spawn
from worksync.realtime.broadcaster import ChangeBroadcaster, broadcaster
from worksync.services.qr_service import REGENERATORS

logger = logging.getLogger(__name__)

CHANGE_EVENT = "data_change"


class ChangeFeedListener:
    def __init__(
        self,
        target: ChangeBroadcaster = broadcaster,
        *,
        dsn: str | None = None,
        channel: str = settings.REALTIME_CHANNEL,
        derived_actions: dict[str, Callable[[Any], Awaitable[Any]]] | None = None,
        connect: Callable[..., Awaitable[Any]] = asyncpg.connect,
    ):
        self.broadcaster = target
        self.dsn = dsn or settings.LISTEN_DSN
        self.channel = channel
        self.derived_actions = REGENERATORS if derived_actions is None else derived_actions
        self._connect = connect
        self._connection: Any = None
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_listening(self) -> bool:
        return self._connection is not None

    async def start(self) -> bool:
        """Subscribe once.  Errors are logged and reported as False."""
        async with self._lock:
            if self._connection is not None:
                return True
            try:
                connection = await self._connect(self.dsn)
                await connection.add_listener(self.channel, self._on_notification)
                connection.add_termination_listener(self._on_termination)
            except Exception:
                logger.exception("Change feed: could not LISTEN on %r, real-time updates disabled", self.channel)
                return False
            self._connection = connection
            logger.info("Change feed listening on channel %r", self.channel)
            return True

    async def stop(self) -> None:
        async with self._lock:
            for task in list(self._tasks):
                task.cancel()
            connection, self._connection = self._connection, None
            if connection is None:
                return
            try:
                await connection.remove_listener(self.channel, self._on_notification)
                await connection.close()
            except Exception:
                logger.exception("Change feed: error while closing listener connection")
            logger.info("Change feed stopped")

    # ── asyncpg callbacks ────────────────────────────────────────────

    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        self.handle_payload(payload)

    def _on_termination(self, connection: Any) -> None:
        if connection is self._connection:
            self._connection = None
        logger.error("Change feed connection terminated, real-time updates stopped until restart")

    # ── Dispatch ─────────────────────────────────────────────────────

    def handle_payload(self, raw: str) -> dict[str, Any] | None:
        """Run the derived action (if any), then broadcast the event as-is."""
        try:
            event = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Change feed: dropping unparsable payload %r", raw)
            return None
        if not isinstance(event, dict):
            logger.warning("Change feed: dropping non-object payload %r", raw)
            return None

        if event.get("action") == "INSERT":
            action = self.derived_actions.get(event.get("entity"))
            if action is not None and event.get("id") is not None:
                self._run_derived(action, event)

        self.broadcaster.broadcast(CHANGE_EVENT, event)
        return event

    def _run_derived(self, action: Callable[[Any], Awaitable[Any]], event: dict[str, Any]) -> None:
        try:
            task = spawn(action(event["id"]), name=f"derived:{event.get('entity')}:{event['id']}")
        except Exception:
            logger.exception("Change feed: derived action for %s could not start", event.get("entity"))
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


change_feed = ChangeFeedListener()
