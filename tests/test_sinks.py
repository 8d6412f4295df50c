"""Tests for sinks package."""

import json
import sqlite3
import threading
from datetime import datetime, timezone

import httpx
import pytest

from src.lsbeat.exceptions import OutboxError, SinkError
from src.lsbeat.models import MarkerKind, OutboundEvent
from src.lsbeat.sinks import EventOutbox, HttpSink, OutboxSink, create_sink


def make_event(name="a.list", kind=MarkerKind.LIST, content=b"payload"):
    return OutboundEvent(
        kind=kind,
        filename=name,
        path=f"/data/{kind.marker}/{name}",
        modtime=datetime(2024, 3, 1, 12, tzinfo=timezone.utc),
        content=content,
        timestamp=datetime(2024, 3, 1, 13, tzinfo=timezone.utc),
    )


class TestEventOutbox:
    """Tests for EventOutbox class."""

    def test_create_outbox(self, tmp_path):
        db_path = tmp_path / "nested" / "outbox.db"
        outbox = EventOutbox(db_path)
        assert db_path.exists()
        outbox.close()

    def test_enqueue_dequeue(self, tmp_path):
        with EventOutbox(tmp_path / "outbox.db") as outbox:
            record = make_event().to_dict()
            item_id = outbox.enqueue(record)

            items = outbox.dequeue()

            assert items == [(item_id, record)]

    def test_fifo_order(self, tmp_path):
        with EventOutbox(tmp_path / "outbox.db") as outbox:
            for i in range(5):
                outbox.enqueue(make_event(f"{i}.list").to_dict())

            items = outbox.dequeue(batch_size=5)

            assert [record["filename"] for _, record in items] == [f"{i}.list" for i in range(5)]

    def test_ack_removes(self, tmp_path):
        with EventOutbox(tmp_path / "outbox.db") as outbox:
            outbox.enqueue(make_event().to_dict())
            items = outbox.dequeue()

            outbox.ack([items[0][0]])

            assert outbox.size() == 0
            assert outbox.dequeue() == []

    def test_nack_returns_to_pending(self, tmp_path):
        with EventOutbox(tmp_path / "outbox.db") as outbox:
            outbox.enqueue(make_event().to_dict())
            items = outbox.dequeue()
            assert outbox.size() == 0

            outbox.nack([items[0][0]])

            assert outbox.size() == 1

    def test_ack_nack_empty(self, tmp_path):
        with EventOutbox(tmp_path / "outbox.db") as outbox:
            outbox.ack([])
            outbox.nack([])

    def test_requeue_unacked(self, tmp_path):
        db_path = tmp_path / "outbox.db"
        with EventOutbox(db_path) as outbox:
            outbox.enqueue(make_event().to_dict())
            outbox.dequeue()

        with EventOutbox(db_path) as outbox:
            assert outbox.size() == 0
            assert outbox.requeue_unacked() == 1
            assert outbox.size() == 1

    def test_closed_outbox_raises(self, tmp_path):
        outbox = EventOutbox(tmp_path / "outbox.db")
        outbox.close()

        with pytest.raises(OutboxError):
            outbox.enqueue({"type": "list"})

    def test_close_twice(self, tmp_path):
        outbox = EventOutbox(tmp_path / "outbox.db")
        outbox.close()
        outbox.close()

    def test_close_from_other_thread_closes_all_connections(self, tmp_path):
        outbox = EventOutbox(tmp_path / "outbox.db")
        main_conn = outbox._get_connection()
        worker_conns = []

        def work():
            outbox.enqueue(make_event().to_dict())
            worker_conns.append(outbox._get_connection())

        worker = threading.Thread(target=work)
        worker.start()
        worker.join()

        closer = threading.Thread(target=outbox.close)
        closer.start()
        closer.join()

        for conn in [main_conn] + worker_conns:
            with pytest.raises(sqlite3.ProgrammingError):
                conn.execute("SELECT 1")


class TestOutboxSink:
    """Tests for OutboxSink class."""

    def test_publish_persists_event(self, tmp_path):
        db_path = tmp_path / "outbox.db"
        with OutboxSink(db_path) as sink:
            sink.publish(make_event(content=b"line\n"))

        with EventOutbox(db_path) as outbox:
            items = outbox.dequeue()

        assert len(items) == 1
        assert items[0][1]["content"] == "line\n"
        assert items[0][1]["type"] == "list"

    def test_close_from_scheduler_thread(self, tmp_path):
        sink = OutboxSink(tmp_path / "outbox.db")
        main_conn = sink.outbox._get_connection()

        closer = threading.Thread(target=sink.close)
        closer.start()
        closer.join()

        with pytest.raises(sqlite3.ProgrammingError):
            main_conn.execute("SELECT 1")

    def test_open_requeues_claimed_records(self, tmp_path):
        db_path = tmp_path / "outbox.db"
        with EventOutbox(db_path) as outbox:
            outbox.enqueue(make_event().to_dict())
            outbox.dequeue()

        sink = OutboxSink(db_path)
        assert sink.outbox.size() == 1
        sink.close()

    def test_publish_after_close_raises_sink_error(self, tmp_path):
        sink = OutboxSink(tmp_path / "outbox.db")
        sink.close()

        with pytest.raises(SinkError):
            sink.publish(make_event())


class TestHttpSink:
    """Tests for HttpSink class."""

    @staticmethod
    def make_sink(tmp_path, handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HttpSink("http://collector.local/events", client=client, spool_path=tmp_path / "spool.db")

    def test_publish_posts_json(self, tmp_path):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200, json={"ok": True})

        sink = self.make_sink(tmp_path, handler)

        sink.publish(make_event(kind=MarkerKind.LOG, name="run.log"))

        assert len(received) == 1
        assert received[0]["type"] == "log"
        assert received[0]["path"] == "/data/LOG/run.log"
        assert sink.pending() == 0
        sink.close()

    def test_rejected_event_delivered_on_next_publish(self, tmp_path):
        statuses = [503, 200, 200]
        received = []

        def handler(request):
            received.append(json.loads(request.content)["filename"])
            return httpx.Response(statuses.pop(0), text="busy")

        sink = self.make_sink(tmp_path, handler)

        sink.publish(make_event("a.list"))
        assert sink.pending() == 1

        sink.publish(make_event("b.list"))

        assert received == ["a.list", "a.list", "b.list"]
        assert sink.pending() == 0
        sink.close()

    def test_rejected_event_delivered_on_close(self, tmp_path):
        statuses = [503, 200]
        received = []

        def handler(request):
            received.append(json.loads(request.content)["filename"])
            return httpx.Response(statuses.pop(0))

        sink = self.make_sink(tmp_path, handler)
        sink.publish(make_event("a.list"))

        sink.close()

        assert received == ["a.list", "a.list"]
        with EventOutbox(tmp_path / "spool.db") as spool:
            assert spool.size() == 0

    def test_undelivered_event_survives_restart(self, tmp_path):
        down = self.make_sink(tmp_path, lambda request: httpx.Response(503, text="busy"))
        down.publish(make_event("a.list"))
        down.close()

        received = []

        def handler(request):
            received.append(json.loads(request.content)["filename"])
            return httpx.Response(200)

        sink = self.make_sink(tmp_path, handler)
        assert sink.pending() == 1

        sink.publish(make_event("b.list"))

        assert received == ["a.list", "b.list"]
        sink.close()

    def test_connection_error_keeps_event(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        sink = self.make_sink(tmp_path, handler)

        sink.publish(make_event())

        assert sink.pending() == 1
        assert sink.flush() == 0
        sink.close()

    def test_close_twice(self, tmp_path):
        sink = self.make_sink(tmp_path, lambda request: httpx.Response(200))
        sink.close()
        sink.close()

    def test_requires_url(self, tmp_path):
        with pytest.raises(ValueError):
            HttpSink("", spool_path=tmp_path / "spool.db")


class TestCreateSink:
    """Tests for create_sink factory."""

    def test_outbox(self, tmp_path):
        sink = create_sink("outbox", db_path=tmp_path / "outbox.db")
        assert isinstance(sink, OutboxSink)
        sink.close()

    def test_http(self, tmp_path):
        sink = create_sink("http", url="http://collector.local/events", spool_path=tmp_path / "spool.db")
        assert isinstance(sink, HttpSink)
        sink.close()

    def test_unsupported(self):
        with pytest.raises(ValueError, match="Unsupported sink"):
            create_sink("kafka")
