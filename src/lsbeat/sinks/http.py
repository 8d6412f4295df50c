"""
HttpSink — posts event records to an HTTP endpoint.

Events are spooled to an :class:`EventOutbox` before any request is made,
so a record the endpoint did not accept is kept and re-sent on the next
publish or on close, and survives a restart.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import httpx

from ..exceptions import SinkError
from ..models import OutboundEvent
from .base import BaseSink
from .outbox import EventOutbox

logger = logging.getLogger(__name__)


class HttpSink(BaseSink):
    """Posts event records as JSON over a single long-lived client."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
        spool_path: Union[str, Path] = "data/http-spool.db",
        spool: Optional[EventOutbox] = None,
        batch_size: int = 100,
    ) -> None:
        if not url:
            raise ValueError("HttpSink requires a url")
        self._url = url
        self._batch_size = batch_size
        self._closed = False
        self.spool = spool or EventOutbox(spool_path)
        requeued = self.spool.requeue_unacked()
        if requeued:
            logger.info(f"Requeued {requeued} undelivered HTTP records")
        self._client = client or httpx.Client(
            timeout=timeout,
            headers={"Content-Type": "application/json", **(headers or {})},
        )

    def _post(self, record: dict) -> None:
        try:
            resp = self._client.post(self._url, json=record)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SinkError(
                f"{self._url} returned HTTP {e.response.status_code} "
                f"for {record.get('path')}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise SinkError(f"Cannot deliver {record.get('path')} to {self._url}: {e}") from e

    def publish(self, event: OutboundEvent) -> None:
        """
        Spool an event, then deliver everything pending.

        Raises:
            OutboxError: If the event cannot be spooled
        """
        self.spool.enqueue(event.to_dict())
        self.flush()

    def flush(self) -> int:
        """
        Deliver pending records in order.

        Delivery stops at the first rejected record, which stays pending
        together with everything after it.

        Returns:
            Number of records delivered
        """
        delivered = 0
        while True:
            items = self.spool.dequeue(batch_size=self._batch_size)
            if not items:
                return delivered

            for index, (item_id, record) in enumerate(items):
                try:
                    self._post(record)
                except SinkError as e:
                    self.spool.nack([pending_id for pending_id, _ in items[index:]])
                    logger.warning(f"{e} ({self.spool.size()} record(s) kept for retry)")
                    return delivered
                self.spool.ack([item_id])
                delivered += 1

    def pending(self) -> int:
        """Number of spooled records not yet delivered."""
        return self.spool.size()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            delivered = self.flush()
            if delivered:
                logger.info(f"Delivered {delivered} spooled record(s) on close")
        finally:
            self.spool.close()
            self._client.close()
        logger.debug("HTTP sink closed")
