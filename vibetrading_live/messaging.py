"""
Notification Transport
JetStream publisher for strategy trade and error events.
"""

import json
import logging
from typing import Any, Dict, Optional

import nats
from nats.aio.client import Client as NatsClient
from nats.js import JetStreamContext
from nats.js.errors import NotFoundError
from pydantic import BaseModel

from vibetrading_live.config import NatsSettings, get_settings

logger = logging.getLogger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Subjects
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Subjects:
    """Subjects carried by the STRATEGY stream."""

    STREAM_SUBJECTS = "STRATEGY.>"
    TRADES_ALL = "STRATEGY.TRADES.*"
    ERRORS = "STRATEGY.ERRORS"

    @classmethod
    def trades(cls, symbol: str) -> str:
        return f"STRATEGY.TRADES.{symbol.upper()}"


def serialize_message(data: Any) -> bytes:
    """Events go through pydantic's JSON mode (Decimal as string); dicts through json with str fallback."""
    if isinstance(data, BaseModel):
        return data.model_dump_json().encode("utf-8")
    return json.dumps(data, default=str).encode("utf-8")


class NatsMessaging:
    """
    Owns one NATS connection and publishes engine events to JetStream.

    `connect` makes sure the notification stream exists so that
    publishes are acknowledged even on a fresh server.
    """

    def __init__(self, settings: Optional[NatsSettings] = None) -> None:
        self.settings = settings or get_settings().nats
        self._nc: Optional[NatsClient] = None
        self._js: Optional[JetStreamContext] = None

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        if self._nc is not None:
            return

        self._nc = await nats.connect(
            self.settings.url,
            error_cb=self._on_error,
            disconnected_cb=self._on_disconnected,
            reconnected_cb=self._on_reconnected,
            connect_timeout=self.settings.connect_timeout,
            reconnect_time_wait=self.settings.reconnect_time_wait,
            max_reconnect_attempts=self.settings.max_reconnect_attempts,
        )
        self._js = self._nc.jetstream()
        await self.ensure_stream()
        logger.info(f"Notification publisher connected to {self.settings.url}")

    async def ensure_stream(self) -> None:
        if self._js is None:
            raise RuntimeError("Not connected to NATS")
        name = self.settings.stream_name
        try:
            await self._js.stream_info(name)
        except NotFoundError:
            await self._js.add_stream(name=name, subjects=[Subjects.STREAM_SUBJECTS])
            logger.info(f"Created JetStream stream {name} for {Subjects.STREAM_SUBJECTS}")

    async def close(self) -> None:
        nc, self._nc, self._js = self._nc, None, None
        if nc is not None:
            await nc.drain()

    async def publish(
        self,
        subject: str,
        data: Any,
        headers: Optional[Dict[str, str]] = None,
        msg_id: Optional[str] = None,
    ) -> None:
        """
        Publish one event and wait for the stream ack.

        `msg_id` becomes the `Nats-Msg-Id` header, so a retried publish of
        the same trade is dropped by the server's duplicate window.
        """
        if self._js is None:
            raise RuntimeError("Not connected to NATS")

        merged = dict(headers or {})
        if msg_id:
            merged["Nats-Msg-Id"] = msg_id

        ack = await self._js.publish(subject, serialize_message(data), headers=merged or None)
        logger.debug(f"{subject} -> {ack.stream}#{ack.seq}")

    async def _on_error(self, e: Exception) -> None:
        logger.error(f"NATS error: {e}")

    async def _on_disconnected(self) -> None:
        logger.warning("NATS disconnected; trade notifications will fail until reconnect")

    async def _on_reconnected(self) -> None:
        logger.info("NATS reconnected")
