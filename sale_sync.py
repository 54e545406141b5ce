# Filename: sale_sync.py

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from calculator import DEFAULT_ECONOMICS, SaleEconomics, sale_progress
from errors import LaunchpadError
from models import PurchaseRecord, SaleStats

logger = logging.getLogger("SaleStateSynchronizer")


@dataclass(frozen=True)
class SaleSnapshot:
    """
    Locally cached view of the sale. Replaced as a whole on every applied poll.
    A failed poll keeps the last good values and only flips `fresh`.
    """
    stats: Optional[SaleStats] = None
    user_purchase: Optional[PurchaseRecord] = None
    paused: Optional[bool] = None
    fresh: bool = False
    sequence: int = 0                # Sequence of the last applied poll
    updated_at: float = 0.0          # Time of the last successful poll
    last_error: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.stats is not None

    @property
    def stale(self) -> bool:
        return self.loaded and not self.fresh

    def progress(self, sale_cap: int) -> Decimal:
        if self.stats is None:
            return Decimal(0)
        return sale_progress(self.stats.tokens_sold, sale_cap)


@dataclass(frozen=True)
class PollResult:
    sequence: int
    stats: Optional[SaleStats] = None
    user_purchase: Optional[PurchaseRecord] = None
    paused: Optional[bool] = None
    error: Optional[str] = None
    at: float = 0.0


def apply_poll_result(snapshot: SaleSnapshot, result: PollResult) -> SaleSnapshot:
    """
    Pure reducer for one poll response.
    Responses are correlated by request sequence: anything not newer than the
    last applied poll is discarded, whatever order it arrived in.
    """
    if result.sequence <= snapshot.sequence:
        return snapshot

    if result.error is not None:
        return replace(snapshot, fresh=False, sequence=result.sequence, last_error=result.error)

    return SaleSnapshot(
        stats=result.stats,
        user_purchase=result.user_purchase,
        paused=result.paused,
        fresh=True,
        sequence=result.sequence,
        updated_at=result.at,
        last_error=None,
    )


class SaleStateSynchronizer:
    """
    Polls getSaleStats, userPurchases(account) and paused on a fixed interval
    and keeps the only copy of the snapshot. Consumers read `snapshot`; the
    transaction controller asks for refresh() after a confirmation.
    """

    def __init__(self, contracts, account: Optional[str] = None,
                 economics: SaleEconomics = DEFAULT_ECONOMICS, poll_interval: float = 10):
        self.contracts = contracts
        self.account = account
        self.economics = economics
        self.poll_interval = poll_interval
        self._snapshot = SaleSnapshot()
        self._issued = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> SaleSnapshot:
        return self._snapshot

    @property
    def progress(self) -> Decimal:
        return self._snapshot.progress(self.economics.sale_cap)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_sequence(self) -> int:
        self._issued += 1
        return self._issued

    def apply(self, result: PollResult) -> SaleSnapshot:
        before = self._snapshot
        self._snapshot = apply_poll_result(before, result)
        if self._snapshot is before:
            logger.debug(f"[SYNC] Discarded out-of-order poll #{result.sequence} (applied #{before.sequence})")
        elif result.error is not None:
            logger.warning(f"[SYNC] Poll #{result.sequence} failed, keeping last snapshot (stale): {result.error}")
        return self._snapshot

    async def refresh(self) -> SaleSnapshot:
        """Issues one poll and applies its outcome."""
        sequence = self.next_sequence()
        try:
            stats, purchase, paused = await asyncio.gather(
                self.contracts.get_sale_stats(self.economics.token_decimals),
                self._read_user_purchase(),
                self.contracts.paused(),
            )
        except LaunchpadError as e:
            return self.apply(PollResult(sequence=sequence, error=str(e), at=time.time()))

        return self.apply(PollResult(
            sequence=sequence,
            stats=stats,
            user_purchase=purchase,
            paused=paused,
            at=time.time(),
        ))

    async def _read_user_purchase(self) -> Optional[PurchaseRecord]:
        if not self.account:
            return None
        return await self.contracts.user_purchases(self.account)

    async def run(self):
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"[SaleStateSynchronizer Error] {e}")
            await asyncio.sleep(self.poll_interval)

    def start(self):
        if self.running:
            return
        logger.info(f"[SYNC] Polling sale state every {self.poll_interval}s")
        self._task = asyncio.ensure_future(self.run())

    async def stop(self):
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
