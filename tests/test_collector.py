"""Tests for collector module."""

from datetime import datetime, timedelta, timezone

import pytest

from src.lsbeat.collector import Collector
from src.lsbeat.exceptions import CollectError, SinkError
from src.lsbeat.models import CollectibleFile, MarkerKind
from src.lsbeat.registrar import Registrar
from src.lsbeat.sinks import BaseSink

MTIME = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


class RecordingSink(BaseSink):
    """Sink that keeps published events in memory."""

    def __init__(self):
        self.events = []
        self.closed = False

    def publish(self, event):
        self.events.append(event)

    def close(self):
        self.closed = True


class FailingSink(RecordingSink):
    """Sink that rejects every event."""

    def publish(self, event):
        raise SinkError("downstream unavailable")


@pytest.fixture
def candidate(tmp_path):
    directory = tmp_path / "list"
    directory.mkdir()
    (directory / "a.list").write_bytes(b"item-1\nitem-2\n")
    return CollectibleFile(str(directory), "a.list", MTIME)


class TestCollector:
    """Tests for Collector class."""

    def test_collect_publishes_event(self, candidate):
        sink = RecordingSink()
        collector = Collector(sink)

        event = collector.collect(candidate, Registrar(), MarkerKind.LIST)

        assert sink.events == [event]
        assert event.kind is MarkerKind.LIST
        assert event.filename == "a.list"
        assert event.path == candidate.full_path
        assert event.modtime == MTIME
        assert event.content == b"item-1\nitem-2\n"

    def test_collect_records_modtime(self, candidate):
        registrar = Registrar()
        Collector(RecordingSink()).collect(candidate, registrar, MarkerKind.LIST)

        assert registrar.lookup(candidate.directory_path, "a.list") == MTIME
        assert registrar.dirty is True

    def test_collect_records_collection_time(self, candidate):
        registrar = Registrar()
        before = datetime.now(timezone.utc)

        event = Collector(RecordingSink(), stamp="collected").collect(candidate, registrar, MarkerKind.LIST)

        recorded = registrar.lookup(candidate.directory_path, "a.list")
        assert recorded == event.timestamp
        assert recorded >= before

    def test_kind_comes_from_caller(self, candidate):
        sink = RecordingSink()
        Collector(sink).collect(candidate, Registrar(), MarkerKind.LOG)

        assert sink.events[0].kind is MarkerKind.LOG
        assert sink.events[0].to_dict()["type"] == "log"

    def test_read_failure_leaves_registrar(self, tmp_path):
        sink = RecordingSink()
        registrar = Registrar()
        missing = CollectibleFile(str(tmp_path), "gone.list", MTIME)

        with pytest.raises(CollectError):
            Collector(sink).collect(missing, registrar, MarkerKind.LIST)

        assert len(registrar) == 0
        assert registrar.dirty is False
        assert sink.events == []

    def test_sink_failure_not_retried(self, candidate):
        registrar = Registrar()

        event = Collector(FailingSink()).collect(candidate, registrar, MarkerKind.LIST)

        assert event.filename == "a.list"
        assert registrar.lookup(candidate.directory_path, "a.list") == MTIME

    def test_recollect_updates_entry(self, candidate):
        registrar = Registrar()
        collector = Collector(RecordingSink())
        collector.collect(candidate, registrar, MarkerKind.LIST)

        newer = CollectibleFile(candidate.directory_path, candidate.filename, MTIME + timedelta(hours=1))
        collector.collect(newer, registrar, MarkerKind.LIST)

        assert registrar.lookup(candidate.directory_path, "a.list") == MTIME + timedelta(hours=1)
        assert len(registrar) == 1

    def test_invalid_stamp(self):
        with pytest.raises(ValueError):
            Collector(RecordingSink(), stamp="ctime")
