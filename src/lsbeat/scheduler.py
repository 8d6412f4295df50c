"""Periodic collection loop."""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .collector import Collector
from .config import BeatConfig
from .detector import find_new_or_changed
from .exceptions import (
    BeatAlreadyRunningError,
    BeatStoppedError,
    CollectError,
    DetectionError,
)
from .locator import DirectoryLocator
from .models import MarkerKind, ScanTarget, utcnow
from .registrar import Registrar, load_registrar, save_registrar
from .sinks import BaseSink, create_sink

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """States of the collection loop."""
    IDLE = "idle"
    COLLECTING = "collecting"
    STOPPED = "stopped"


@dataclass
class CycleResult:
    """
    Outcome of one collection cycle.

    Attributes:
        full_scan: Whether marker directories were rediscovered
        list_targets: Number of list directories processed
        log_targets: Number of LOG directories processed
        list_collected: Number of list files published
        log_collected: Number of log files published
        errors: Directories or files skipped because of I/O errors
        list_saved: Whether the list registrar was written
        log_saved: Whether the log registrar was written
    """
    full_scan: bool = False
    list_targets: int = 0
    log_targets: int = 0
    list_collected: int = 0
    log_collected: int = 0
    errors: int = 0
    list_saved: bool = False
    log_saved: bool = False

    @property
    def collected(self) -> int:
        return self.list_collected + self.log_collected


class BeatScheduler:
    """
    Drives collection cycles on a fixed period.

    The scheduler owns both registrars, the directory locator and the sink.
    Cycles never overlap: the loop waits for the next tick only after the
    previous cycle has finished, and a stop request is honoured at tick
    boundaries.
    """

    def __init__(
        self,
        config: Optional[BeatConfig] = None,
        sink: Optional[BaseSink] = None,
        list_registrar: Optional[Registrar] = None,
        log_registrar: Optional[Registrar] = None,
        locator: Optional[DirectoryLocator] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            config: Collector configuration
            sink: Sink to publish to (created from config if omitted)
            list_registrar: Registrar for list files (loaded from config if omitted)
            log_registrar: Registrar for log files (loaded from config if omitted)
            locator: Directory locator (created from config if omitted)
        """
        self.config = config or BeatConfig()

        self.list_registrar = (
            list_registrar if list_registrar is not None
            else load_registrar(self.config.registrar_list_path)
        )
        self.log_registrar = (
            log_registrar if log_registrar is not None
            else load_registrar(self.config.registrar_log_path)
        )
        self.locator = locator or DirectoryLocator(
            self.config.scan_roots,
            full_rescan_every=self.config.full_rescan_every,
            follow_symlinks=self.config.follow_symlinks,
        )

        self._sink = sink or create_sink(self.config.sink, **self.config.sink_kwargs())
        self._collector = Collector(self._sink, stamp=self.config.registrar_stamp)

        self._state = SchedulerState.IDLE
        self._running = False
        self._sink_closed = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self.cycles = 0
        self.last_cycle_at: Optional[datetime] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the loop is running."""
        return self._running

    def run_cycle(self) -> CycleResult:
        """
        Run one full collection pass.

        Returns:
            Summary of the cycle

        Raises:
            BeatStoppedError: If the scheduler has been stopped
        """
        if self._state is SchedulerState.STOPPED:
            raise BeatStoppedError("Scheduler is stopped")

        self._state = SchedulerState.COLLECTING
        result = CycleResult()
        try:
            previous_scan = self.locator.last_full_scan
            list_targets, log_targets = self.locator.refresh()
            result.full_scan = self.locator.last_full_scan is not previous_scan
            result.list_targets = len(list_targets)
            result.log_targets = len(log_targets)

            limit = self.config.max_files_per_cycle
            result.list_collected = self._collect_targets(
                list_targets, self.list_registrar, MarkerKind.LIST, limit, result,
            )
            if limit is not None:
                limit -= result.list_collected
            result.log_collected = self._collect_targets(
                log_targets, self.log_registrar, MarkerKind.LOG, limit, result,
            )

            # A registrar left dirty by a failed save is retried even when idle
            if result.list_collected or self.list_registrar.dirty:
                result.list_saved = save_registrar(self.config.registrar_list_path, self.list_registrar)
            if result.log_collected or self.log_registrar.dirty:
                result.log_saved = save_registrar(self.config.registrar_log_path, self.log_registrar)

            if result.collected:
                logger.info(
                    f"Cycle collected {result.list_collected} list and {result.log_collected} log file(s) "
                    f"from {result.list_targets}/{result.log_targets} directories"
                )
            else:
                logger.info("no file added at this period.")
        finally:
            self.cycles += 1
            self.last_cycle_at = utcnow()
            if self._state is SchedulerState.COLLECTING:
                self._state = SchedulerState.IDLE

        return result

    def _collect_targets(
        self,
        targets: List[ScanTarget],
        registrar: Registrar,
        kind: MarkerKind,
        limit: Optional[int],
        result: CycleResult,
    ) -> int:
        """Detect and collect files for every target of one kind."""
        collected = 0
        for target in targets:
            try:
                candidates = find_new_or_changed(target, registrar)
            except DetectionError as e:
                logger.warning(f"Skipping {target.directory_path} this cycle: {e}")
                result.errors += 1
                continue

            for candidate in candidates:
                if limit is not None and collected >= limit:
                    logger.info(f"Reached max_files_per_cycle, deferring remaining {kind.value} files")
                    return collected
                try:
                    self._collector.collect(candidate, registrar, kind)
                except CollectError:
                    result.errors += 1
                    continue
                collected += 1

        return collected

    def _run_loop(self) -> None:
        logger.info(
            f"Collector running (period={self.config.period}s, "
            f"full rescan every {self.config.full_rescan_every} cycles, "
            f"{len(self.locator.roots)} root(s))"
        )
        try:
            if self.config.collect_on_start and not self._stop_event.is_set():
                self._safe_cycle()
            while not self._stop_event.wait(timeout=self.config.period):
                self._safe_cycle()
        finally:
            self._shutdown()

    def _safe_cycle(self) -> None:
        try:
            self.run_cycle()
        except Exception as e:
            logger.error(f"Error in collection cycle: {e}", exc_info=True)

    def _begin(self) -> None:
        with self._lock:
            if self._state is SchedulerState.STOPPED:
                raise BeatStoppedError("Scheduler is stopped")
            if self._running:
                raise BeatAlreadyRunningError("Scheduler is already running")

            self._running = True
            self._stop_event.clear()

    def start(self) -> None:
        """
        Run the collection loop (blocking) until stop() is called.

        Raises:
            BeatAlreadyRunningError: If already running
            BeatStoppedError: If the scheduler has been stopped
        """
        self._begin()
        try:
            self._run_loop()
        except KeyboardInterrupt:
            pass

    def start_async(self) -> None:
        """
        Run the collection loop in a background thread.

        Raises:
            BeatAlreadyRunningError: If already running
            BeatStoppedError: If the scheduler has been stopped
        """
        self._begin()
        self._thread = threading.Thread(target=self._run_loop, name="BeatScheduler", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """
        Stop the loop after the cycle in progress, if any, and close the sink.
        """
        self._stop_event.set()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
            self._thread = None

        if not self._running:
            self._shutdown()

    def _shutdown(self) -> None:
        """Internal shutdown procedure."""
        with self._lock:
            if self._state is SchedulerState.STOPPED:
                return
            self._state = SchedulerState.STOPPED
            self._running = False

        if self.list_registrar.dirty:
            save_registrar(self.config.registrar_list_path, self.list_registrar)
        if self.log_registrar.dirty:
            save_registrar(self.config.registrar_log_path, self.log_registrar)

        if not self._sink_closed:
            self._sink_closed = True
            self._sink.close()
        logger.info("Collector stopped")

    def close(self) -> None:
        """Stop the scheduler and release the sink."""
        self.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
