# Filename: notifier.py

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger("Notifier")


class NoticeLevel(str, Enum):
    INFO = "info"
    LOADING = "loading"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notice:
    level: NoticeLevel
    message: str
    key: Optional[str] = None        # Keyed notices replace each other and can be dismissed
    persistent: bool = False         # Stays until explicitly dismissed
    timestamp: float = field(default_factory=time.time)


class Notifier:
    """
    Notification channel. Owns no logic: it logs every notice and remembers
    the keyed and persistent ones until they are dismissed.
    """

    def __init__(self):
        self.history: List[Notice] = []
        self.active: Dict[str, Notice] = {}

    def notify(self, notice: Notice):
        self.history.append(notice)
        if notice.key or notice.persistent:
            self.active[notice.key or notice.message] = notice

        log = logger.error if notice.level == NoticeLevel.ERROR else logger.info
        log(f"[{notice.level.value.upper()}] {notice.message}")
        self.deliver(notice)

    def dismiss(self, key: str):
        if self.active.pop(key, None) is not None:
            logger.debug(f"[DISMISS] {key}")

    def deliver(self, notice: Notice):
        """Hook for channels that push notices somewhere else."""

    def active_notices(self) -> List[Notice]:
        return list(self.active.values())


def escape_md(text: str) -> str:
    return text.replace('_', '\\_').replace('*', '\\*').replace('[', '\\[').replace('`', '\\`')


def format_purchase_alert(tx_hash: str, eth_amount, preview: Optional[dict] = None) -> str:
    """Markdown text for a confirmed purchase."""
    text = "✅ *Tokens purchased successfully!*\n\n"
    text += f"*Amount:* {eth_amount} ETH\n"
    if preview:
        text += f"*Tokens:* {preview['tokens']} LST\n"
        text += f"*Platform Fee:* {preview['platform_fee']} ETH\n"
        text += f"*To Project:* {preview['creator_amount']} ETH\n"
    text += f"*Tx:* `{tx_hash}`"
    return text


def format_creation_alert(tx_hash: str, name: str, symbol: str, total_supply: int) -> str:
    text = "🚀 *Token created successfully!*\n\n"
    text += f"*Name:* {escape_md(name)}\n"
    text += f"*Symbol:* `{symbol}`\n"
    text += f"*Supply:* {total_supply:,}\n"
    text += f"*Tx:* `{tx_hash}`"
    return text
