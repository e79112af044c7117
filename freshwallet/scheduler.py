"""
SCAN ORCHESTRATOR

Periodic driver for the fresh wallet pipeline.

State machine: Idle -> Running -> Idle
- a timer tick while Running is logged and skipped
- manual scans go through the same guard
- every scan is bounded by a scan-level timeout
- failures are caught at the tick boundary; the next tick runs normally

Interval quantization: ticks fire on a whole-minute grid below one hour, a
whole-hour grid below one day, and once a day above that. Seconds that do
not fit the grid are dropped (with a warning at startup).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .base import BaseNotifier, BaseSymbolStore, NotificationContext
from .deduplicator import AlertDeduplicator
from .integration import FreshWalletService
from .models import FreshWallet

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 60
HOUR = 3600
DAY = 86400


def quantize_interval(interval_seconds: float) -> int:
    """
    Round an interval down onto the schedule grid.

    Returns:
        Effective interval in seconds (>= 60)
    """
    if interval_seconds < MIN_INTERVAL_SECONDS:
        raise ValueError(f"interval must be >= {MIN_INTERVAL_SECONDS}s, got {interval_seconds}")
    if interval_seconds < HOUR:
        return int(interval_seconds // 60) * 60
    if interval_seconds < DAY:
        return int(interval_seconds // HOUR) * HOUR
    return DAY


def describe_interval(interval_seconds: int) -> str:
    if interval_seconds < HOUR:
        return f"every {interval_seconds // 60} minute(s)"
    if interval_seconds < DAY:
        return f"every {interval_seconds // HOUR} hour(s)"
    return "daily"


@dataclass
class ScanState:
    running: bool = False
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_trigger: Optional[str] = None
    last_result_count: Optional[int] = None
    last_error: Optional[str] = None
    scans_completed: int = 0
    scans_failed: int = 0
    scans_skipped: int = 0
    wallets_notified: int = 0


class ScanOrchestrator:
    """
    Owns the overlap guard and the timer.

    Usage:
        orchestrator = ScanOrchestrator(service, store, notifier, interval_seconds=300)
        await orchestrator.start()
        ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        service: FreshWalletService,
        symbol_store: BaseSymbolStore,
        notifier: BaseNotifier,
        interval_seconds: float,
        scan_timeout: float = 1800,
        alert_dedup: Optional[AlertDeduplicator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            service: Detection pipeline
            symbol_store: Watch-list source (read once per scan)
            notifier: Result sink
            interval_seconds: Requested tick period (>= 60, quantized)
            scan_timeout: Wall-clock bound on one scan (seconds)
            alert_dedup: Cross-scan notification cooldown (None = notify every time)
            sleep: Awaitable sleep used by the timer (injectable for tests)
        """
        self.service = service
        self.symbol_store = symbol_store
        self.notifier = notifier
        self.requested_interval = interval_seconds
        self.interval_seconds = quantize_interval(interval_seconds)
        self.scan_timeout = scan_timeout
        self.alert_dedup = alert_dedup
        self._sleep = sleep

        if self.interval_seconds != interval_seconds:
            logger.warning(
                f"[SCHEDULER] Interval {interval_seconds}s does not fit the schedule grid, "
                f"running {describe_interval(self.interval_seconds)} ({self.interval_seconds}s) instead"
            )

        self.state = ScanState()
        self._lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    # ================================================================
    # SCANS
    # ================================================================

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_scheduled_scan(self) -> Optional[List[FreshWallet]]:
        """
        Timer entry point. Never raises.

        Returns:
            Results, [] on failure, None when skipped
        """
        try:
            return await self._run_guarded('scheduled')
        except Exception as e:
            logger.error(f"[SCHEDULER] ❌ Scheduled scan failed: {e}", exc_info=True)
            return []

    async def run_manual_scan(self) -> Optional[List[FreshWallet]]:
        """
        On-demand entry point, sharing the scheduled path's guard.

        Returns:
            Results, or None when another scan is already running

        Raises:
            Whatever the scan raised (after it is recorded in the state)
        """
        return await self._run_guarded('manual')

    async def _run_guarded(self, trigger: str) -> Optional[List[FreshWallet]]:
        if self._lock.locked():
            self.state.scans_skipped += 1
            logger.warning(
                f"[SCHEDULER] ⏭️ Scan already running "
                f"(started {self.state.last_started_at}), skipping {trigger} scan"
            )
            return None

        async with self._lock:
            self.state.running = True
            self.state.last_started_at = datetime.now()
            self.state.last_trigger = trigger
            logger.info(f"[SCHEDULER] ▶️ Starting {trigger} scan")
            try:
                results = await asyncio.wait_for(self._scan(), timeout=self.scan_timeout)
                await self._notify_all(results, trigger)
            except asyncio.TimeoutError:
                self.state.scans_failed += 1
                self.state.last_error = f"timed out after {self.scan_timeout}s"
                raise
            except Exception as e:
                self.state.scans_failed += 1
                self.state.last_error = str(e)
                raise
            else:
                self.state.scans_completed += 1
                self.state.last_result_count = len(results)
                self.state.last_error = None
                return results
            finally:
                self.state.running = False
                self.state.last_finished_at = datetime.now()
                elapsed = (self.state.last_finished_at - self.state.last_started_at).total_seconds()
                logger.info(f"[SCHEDULER] ⏹️ {trigger.capitalize()} scan finished in {elapsed:.1f}s")

    async def _scan(self) -> List[FreshWallet]:
        symbols = list(self.symbol_store.get_symbols())
        logger.info(f"[SCHEDULER] Watch-list: {symbols or 'empty'}")
        return await self.service.find_fresh_wallets(symbols)

    async def _notify_all(self, results: List[FreshWallet], trigger: str):
        """Forward results to the notifier. A failed delivery never aborts the rest."""
        if self.alert_dedup:
            self.alert_dedup.cleanup_expired()

        total = len(results)
        for rank, wallet in enumerate(results, 1):
            if self.alert_dedup and self.alert_dedup.is_duplicate(wallet.wallet, wallet.chain):
                logger.debug(f"[SCHEDULER] {wallet.wallet} on {wallet.chain} already notified, skipping alert")
                continue

            context = NotificationContext(
                trigger=trigger,
                window_seconds=self.service.window_seconds,
                rank=rank,
                total=total,
            )
            try:
                delivered = await self.notifier.notify(wallet, context)
            except Exception as e:
                logger.error(f"[SCHEDULER] Notification failed for {wallet.wallet}: {e}")
                continue

            if not delivered:
                logger.warning(f"[SCHEDULER] Alert for {wallet.wallet} on {wallet.chain} not delivered")
                continue

            # Cooldown starts only once the alert is out
            if self.alert_dedup:
                self.alert_dedup.record(wallet.wallet, wallet.chain)
            self.state.wallets_notified += 1

    # ================================================================
    # TIMER
    # ================================================================

    def _launch_tick(self):
        """Run one scheduled scan as its own task so a slow scan never delays the timer."""
        task = asyncio.create_task(self.run_scheduled_scan(), name="freshwallet-scan")
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _timer_loop(self):
        logger.info(f"[SCHEDULER] Timer started ({describe_interval(self.interval_seconds)})")
        while True:
            self._launch_tick()
            await self._sleep(self.interval_seconds)

    async def start(self):
        """Start the timer. The first scan fires immediately."""
        if self._timer_task:
            return
        self._timer_task = asyncio.create_task(self._timer_loop(), name="freshwallet-timer")

    async def stop(self):
        """Stop the timer and cancel any scan in flight."""
        tasks = list(self._ticks)
        if self._timer_task:
            tasks.append(self._timer_task)
            self._timer_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("[SCHEDULER] Stopped")

    # ================================================================
    # STATUS
    # ================================================================

    def get_status(self) -> Dict:
        state = self.state
        return {
            'running': state.running,
            'timer_active': self._timer_task is not None,
            'interval_seconds': self.interval_seconds,
            'schedule': describe_interval(self.interval_seconds),
            'scan_timeout_seconds': self.scan_timeout,
            'last_started_at': state.last_started_at.isoformat() if state.last_started_at else None,
            'last_finished_at': state.last_finished_at.isoformat() if state.last_finished_at else None,
            'last_trigger': state.last_trigger,
            'last_result_count': state.last_result_count,
            'last_error': state.last_error,
            'scans_completed': state.scans_completed,
            'scans_failed': state.scans_failed,
            'scans_skipped': state.scans_skipped,
            'wallets_notified': state.wallets_notified,
            'pipeline': self.service.get_stats(),
        }
