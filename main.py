# Filename: main.py

import argparse
import asyncio
import logging
import sys

from calculator import creation_total, purchase_preview
from config import economics_from_config, load_config
from contract_client import LaunchpadContracts, NodeWalletSession
from flows import CreationFlow, PurchaseFlow
from models import TxStatus
from notifier import Notifier
from sale_reporter import SaleReporter
from telegram_alert import TelegramNotifier

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")


def build_notifier(config) -> Notifier:
    if config.get("ENABLE_TELEGRAM") and config.get("TELEGRAM_BOT_TOKEN") and config.get("TELEGRAM_CHAT_ID"):
        return TelegramNotifier(config["TELEGRAM_BOT_TOKEN"], config["TELEGRAM_CHAT_ID"])
    return Notifier()


def build_session(config):
    contracts = LaunchpadContracts.from_config(config)
    wallet = None
    if config.get("WALLET_ADDRESS"):
        wallet = NodeWalletSession(contracts.w3, config["WALLET_ADDRESS"])
    else:
        logger.warning("No WALLET_ADDRESS configured: read-only session")
    return contracts, wallet, build_notifier(config)


def cmd_preview(args, config) -> int:
    economics = economics_from_config(config)
    preview = purchase_preview(args.eth, economics)
    if preview is None:
        print("Invalid amount")
        return 1
    print(f"You will receive:     {preview['tokens']} LST")
    print(f"Platform Fee ({economics.fee_rate * 100:.1f}%): {preview['platform_fee']} ETH")
    print(f"To Project:           {preview['creator_amount']} ETH")
    if args.fee is not None:
        print(f"Creation total:       {creation_total(args.fee, args.liquidity)} ETH")
    return 0


async def cmd_create(args, config) -> int:
    contracts, wallet, notifier = build_session(config)
    flow = CreationFlow(contracts, wallet, notifier, economics_from_config(config), config)
    await flow.load_creation_fee()
    preview = flow.preview()
    logger.info(f"Creation fee {preview['creation_fee']} ETH + liquidity {preview['liquidity']} ETH = {preview['total']} ETH")

    await flow.submit(args.name, args.symbol, args.supply, args.liquidity)
    state = await flow.settle()
    return 0 if state.status == TxStatus.CONFIRMED else 1


async def cmd_buy(args, config) -> int:
    contracts, wallet, notifier = build_session(config)
    flow = PurchaseFlow(contracts, wallet, notifier, economics_from_config(config), config)
    await flow.load_price()

    await flow.submit(args.eth)
    state = await flow.settle()
    if state.status == TxStatus.CONFIRMED:
        print(SaleReporter(flow).format_report(flow.synchronizer.snapshot, flow.economics))
    return 0 if state.status == TxStatus.CONFIRMED else 1


async def cmd_status(args, config) -> int:
    contracts, wallet, notifier = build_session(config)
    flow = PurchaseFlow(contracts, wallet, notifier, economics_from_config(config), config)
    if not flow.enabled:
        return 1
    await flow.load_price()
    await flow.synchronizer.refresh()
    reporter = SaleReporter(flow, event_lookback_blocks=int(config.get("EVENT_LOOKBACK_BLOCKS", 5000)))
    print(await reporter.send_report())
    return 0


async def cmd_watch(args, config) -> int:
    contracts, wallet, notifier = build_session(config)
    flow = PurchaseFlow(contracts, wallet, notifier, economics_from_config(config), config)
    if not flow.enabled:
        return 1
    reporter = SaleReporter(
        flow,
        notifier=notifier,
        interval=float(config.get("REPORT_INTERVAL_SECONDS", 60)),
        event_lookback_blocks=int(config.get("EVENT_LOOKBACK_BLOCKS", 5000)),
    )
    await flow.start()
    try:
        await reporter.run()
    finally:
        await flow.stop()
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Token launchpad client")
    parser.add_argument("--config", default="config.json", help="Path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("preview", help="Preview a purchase (offline)")
    p.add_argument("eth")
    p.add_argument("--fee", default=None, help="Creation fee, to preview a creation total")
    p.add_argument("--liquidity", default="0.001")

    p = sub.add_parser("create", help="Create a token")
    p.add_argument("--name", required=True)
    p.add_argument("--symbol", required=True)
    p.add_argument("--supply", required=True, help="Total supply in whole tokens")
    p.add_argument("--liquidity", default="0.001")

    p = sub.add_parser("buy", help="Buy sale tokens")
    p.add_argument("eth")

    sub.add_parser("status", help="Show sale status once")
    sub.add_parser("watch", help="Poll the sale and report periodically")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)

    if args.command == "preview":
        return cmd_preview(args, config)

    commands = {
        "create": cmd_create,
        "buy": cmd_buy,
        "status": cmd_status,
        "watch": cmd_watch,
    }
    try:
        return asyncio.run(commands[args.command](args, config))
    except KeyboardInterrupt:
        logger.info("❌ Stopped by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
