"""Queue consumer for job change notifications.

Pulls change events from an HTTP pull queue, validates them into
ChangeEvent objects, dispatches them to a handler (normally
JobTrigger.handle), then acks or nacks. Delivery is at-least-once:
a handler failure nacks the message so it is redelivered.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from audio_notes.storage.interface import ChangeEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], Awaitable[Any]]

# Lease must outlive one full job run.
DEFAULT_VISIBILITY_TIMEOUT_MS = 15 * 60 * 1000


@dataclass
class QueueMessage:
    """A message received from the event queue."""

    message_id: str
    lease_id: str
    body: dict[str, Any]


class ChangeEventConsumer:
    """HTTP pull consumer for the job change-event queue.

    Configuration from environment variables:
        EVENT_QUEUE_API_URL, EVENT_QUEUE_ID, EVENT_QUEUE_TOKEN
    """

    def __init__(
        self,
        queue_api_url: str | None = None,
        queue_id: str | None = None,
        api_token: str | None = None,
        poll_interval: float = 5.0,
        batch_size: int = 10,
        visibility_timeout_ms: int = DEFAULT_VISIBILITY_TIMEOUT_MS,
    ) -> None:
        self.queue_api_url = (
            queue_api_url or os.environ.get("EVENT_QUEUE_API_URL", "")
        ).rstrip("/")
        self.queue_id = queue_id or os.environ.get("EVENT_QUEUE_ID", "")
        self.api_token = api_token or os.environ.get("EVENT_QUEUE_TOKEN", "")
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.visibility_timeout_ms = visibility_timeout_ms
        self._running = False

    def _headers(self) -> dict[str, str]:
        """Build authentication headers for the queue API."""
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _url(self, action: str) -> str:
        return f"{self.queue_api_url}/queues/{self.queue_id}/messages/{action}"

    async def _pull_messages(self, client: httpx.AsyncClient) -> list[QueueMessage]:
        """Pull a batch of messages.

        Returns:
            List of QueueMessage objects. Empty list on error or no messages.
        """
        try:
            response = await client.post(
                self._url("pull"),
                headers=self._headers(),
                json={
                    "batch_size": self.batch_size,
                    "visibility_timeout_ms": self.visibility_timeout_ms,
                },
                timeout=30.0,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Queue pull failed for %s: %s", self.queue_id, exc)
            return []

        data = response.json()
        messages_data = data.get("result", {}).get("messages", [])

        messages: list[QueueMessage] = []
        for msg in messages_data:
            try:
                body = msg["body"]
                # Bodies arrive as JSON strings
                if isinstance(body, str):
                    body = json.loads(body)
                messages.append(
                    QueueMessage(
                        message_id=msg["id"],
                        lease_id=msg["lease_id"],
                        body=body,
                    )
                )
            except (KeyError, TypeError, json.JSONDecodeError) as exc:
                logger.warning("Malformed queue message structure: %s", exc)

        return messages

    async def _settle(
        self, action: str, lease_id: str, client: httpx.AsyncClient
    ) -> None:
        """Ack or nack a message lease; failures are logged only."""
        key = "acks" if action == "ack" else "nacks"
        try:
            response = await client.post(
                self._url(action),
                headers=self._headers(),
                json={key: [{"lease_id": lease_id}]},
                timeout=30.0,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("%s failed for lease %s: %s", action.capitalize(), lease_id, exc)

    async def _ack_message(self, lease_id: str, client: httpx.AsyncClient) -> None:
        await self._settle("ack", lease_id, client)

    async def _nack_message(self, lease_id: str, client: httpx.AsyncClient) -> None:
        await self._settle("nack", lease_id, client)

    async def _process_message(
        self,
        message: QueueMessage,
        handler: EventHandler,
        client: httpx.AsyncClient,
    ) -> None:
        """Validate, dispatch, and ack/nack a single message."""
        try:
            event = ChangeEvent.from_message_body(message.body)
        except ValueError as exc:
            logger.warning("Invalid message %s: %s", message.message_id, exc)
            await self._nack_message(message.lease_id, client)
            return

        try:
            await handler(event)
        except Exception:
            logger.error(
                "Dispatch failed for %s/%s",
                event.collection,
                event.document_id,
                exc_info=True,
                extra={"job_id": event.document_id},
            )
            await self._nack_message(message.lease_id, client)
            return

        await self._ack_message(message.lease_id, client)

    async def poll_once(self, handler: EventHandler) -> int:
        """Execute a single poll cycle.

        Returns:
            Number of messages processed.
        """
        processed = 0
        async with httpx.AsyncClient() as client:
            for msg in await self._pull_messages(client):
                await self._process_message(msg, handler, client)
                processed += 1
        return processed

    async def run(self, handler: EventHandler) -> None:
        """Start the polling loop. Runs until stopped."""
        self._running = True
        logger.info("Change-event consumer starting poll loop")

        while self._running:
            try:
                count = await self.poll_once(handler)
                if count > 0:
                    logger.info("Processed %d messages this cycle", count)
            except Exception:
                logger.error("Unexpected error in poll cycle", exc_info=True)

            await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        """Signal the polling loop to stop."""
        self._running = False
        logger.info("Change-event consumer stopping")
