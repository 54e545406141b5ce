from unittest import mock

from notifier import Notice, NoticeLevel, Notifier, format_creation_alert
from telegram_alert import TelegramNotifier


def test_keyed_and_persistent_notices_stay_until_dismissed():
    notifier = Notifier()
    notifier.notify(Notice(NoticeLevel.LOADING, "Confirming transaction...", key="confirming"))
    notifier.notify(Notice(NoticeLevel.WARNING, "Presale address not configured", key="cfg", persistent=True))
    notifier.notify(Notice(NoticeLevel.SUCCESS, "done"))

    assert [n.message for n in notifier.active_notices()] == [
        "Confirming transaction...",
        "Presale address not configured",
    ]
    notifier.dismiss("confirming")
    assert len(notifier.active_notices()) == 1
    assert len(notifier.history) == 3


def test_creation_alert_escapes_name():
    text = format_creation_alert("0xaa", "my_token", "MT", 1_000_000)
    assert "my\\_token" in text
    assert "1,000,000" in text


def test_telegram_skips_loading_and_sends_others():
    notifier = TelegramNotifier("token", "chat")
    with mock.patch("telegram_alert.requests.post") as post:
        post.return_value.status_code = 200
        notifier.notify(Notice(NoticeLevel.LOADING, "Confirming transaction..."))
        notifier.notify(Notice(NoticeLevel.ERROR, "Transaction failed"))

    assert post.call_count == 1
    payload = post.call_args.kwargs["data"]
    assert payload["chat_id"] == "chat"
    assert payload["text"] == "❌ Transaction failed"


def test_telegram_without_credentials_sends_nothing(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    notifier = TelegramNotifier()
    with mock.patch("telegram_alert.requests.post") as post:
        notifier.notify(Notice(NoticeLevel.SUCCESS, "ok"))
    post.assert_not_called()
