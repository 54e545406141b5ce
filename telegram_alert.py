# Filename: telegram_alert.py

import os
import logging
from typing import Any, Dict, Optional

import requests

from notifier import Notice, NoticeLevel, Notifier

logger = logging.getLogger("TelegramNotifier")

LEVEL_ICONS = {
    NoticeLevel.INFO: "ℹ️",
    NoticeLevel.SUCCESS: "✅",
    NoticeLevel.WARNING: "⚠️",
    NoticeLevel.ERROR: "❌",
}


class TelegramNotifier(Notifier):
    def __init__(self, bot_token: str = None, chat_id: str = None, config_data: Optional[Dict[str, Any]] = None):
        super().__init__()
        cfg = config_data or {}
        self.bot_token = bot_token or os.getenv("TELEGRAM_BOT_TOKEN") or cfg.get("TELEGRAM_BOT_TOKEN", "")
        self.chat_id = chat_id or os.getenv("TELEGRAM_CHAT_ID") or cfg.get("TELEGRAM_CHAT_ID", "")

        if not self.bot_token or not self.chat_id:
            logger.error("[Telegram] Missing bot token or chat ID!")

    def deliver(self, notice: Notice):
        # Spinners only make sense on a live screen
        if notice.level == NoticeLevel.LOADING:
            return
        text = notice.message
        if not text.lstrip().startswith(tuple(LEVEL_ICONS.values()) + ("🚀", "📊")):
            text = f"{LEVEL_ICONS.get(notice.level, '')} {text}".strip()
        self.send_markdown(text)

    def send_markdown(self, text: str):
        """
        Sends a raw Markdown message.
        """
        if not self.bot_token or not self.chat_id:
            return

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True
        }

        try:
            response = requests.post(url, data=payload, timeout=10)
            if response.status_code != 200:
                logger.error(f"[Telegram] Failed: {response.status_code} - {response.text}")
            else:
                logger.info("[Telegram] ✅ Message sent successfully.")
        except requests.RequestException as e:
            logger.error(f"[Telegram] Request exception: {e}")
