# Filename: sale_reporter.py

import asyncio
import logging
from typing import List, Optional

from calculator import DEFAULT_ECONOMICS, SaleEconomics, format_tokens, round_display
from errors import LaunchpadError
from models import PurchaseEvent
from notifier import Notice, NoticeLevel, Notifier
from sale_sync import SaleSnapshot

logger = logging.getLogger("SaleReporter")


class SaleReporter:
    def __init__(self, flow, notifier: Optional[Notifier] = None, interval: float = 60,
                 event_lookback_blocks: int = 5000):
        self.flow = flow
        self.notifier = notifier
        self.interval = interval
        self.event_lookback_blocks = event_lookback_blocks

    def format_report(self, snapshot: SaleSnapshot, economics: SaleEconomics = DEFAULT_ECONOMICS,
                      events: Optional[List[PurchaseEvent]] = None) -> str:
        stats = snapshot.stats
        if stats is None:
            return "📊 *Live Stats*\n\nLoading sale data..."

        progress = snapshot.progress(economics.sale_cap)
        marker = " (stale)" if snapshot.stale else ""
        report = f"""
📊 *Live Stats*{marker}

*Tokens Sold:* {format_tokens(stats.tokens_sold, 0)} LST
*Remaining:* {format_tokens(stats.tokens_remaining, 0)} LST
*Progress:* {round_display(progress, 1)}% sold
*Total Raised:* {round_display(stats.total_raised, 4)} ETH
*Platform Fees:* {round_display(stats.total_fees_collected, 4)} ETH
        """.strip()

        if not stats.is_active:
            report += "\n\n⚠️ Presale is not active"
        if snapshot.paused:
            report += "\n⏸️ Presale is currently paused"

        purchase = snapshot.user_purchase
        if purchase is not None:
            report += f"""

*Your Purchases*
    ETH Spent: {purchase.eth_spent.normalize():f} ETH
    Tokens Received: {format_tokens(purchase.token_count(economics.price), 0)} LST"""

        if events:
            report += "\n\n*Recent Purchases*"
            for event in events[-5:]:
                report += (
                    f"\n    `{event.buyer[:10]}…` {round_display(event.eth_amount, 4)} ETH"
                    f" → {format_tokens(event.token_amount, 0)} LST"
                )

        return report

    async def recent_events(self) -> List[PurchaseEvent]:
        contracts = self.flow.contracts
        try:
            latest = await contracts.latest_block()
            start = max(0, latest - self.event_lookback_blocks)
            return await contracts.get_purchase_events(start, self.flow.economics.token_decimals)
        except LaunchpadError as e:
            logger.warning(f"[REPORT] Could not load purchase events: {e}")
            return []

    async def send_report(self, with_events: bool = True) -> str:
        events = await self.recent_events() if with_events else None
        message = self.format_report(self.flow.synchronizer.snapshot, self.flow.economics, events)

        if self.notifier:
            self.notifier.notify(Notice(NoticeLevel.INFO, message))
            logger.info("[REPORT] Sale report sent.")
        else:
            logger.info("[REPORT] \n" + message)
        return message

    async def run(self):
        while True:
            try:
                await self.send_report()
            except Exception as e:
                logger.error(f"[Reporter Error] Failed to send report: {e}")
            await asyncio.sleep(self.interval)
