"""Command line entrypoint for the Bags earnings service."""

from __future__ import annotations

import argparse
import json
import signal
import threading
from typing import List, Optional

import uvicorn

from .api import ServiceState, create_api_app
from .config.settings import get_app_config
from .errors import BagStatsError
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .services.container import Services, build_services
from .services.digest import send_daily_summaries

logger = get_logger(__name__)


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run_scan(services: Services) -> int:
    events = services.monitor.scan_all()
    _print(
        [
            {"wallet": event.wallet, "deltaLamports": event.delta_lamports, "deltaValue": event.delta_value}
            for event in events
        ]
    )
    return 0


def run_check(services: Services, wallet: str) -> int:
    wallet = services.subscriptions.validate_wallet(wallet)
    event = services.monitor.check_wallet(wallet)
    _print(services.subscriptions.wallet_history(wallet) | {"newBag": event is not None})
    return 0


def run_stats(services: Services, wallet: str) -> int:
    wallet = services.subscriptions.validate_wallet(wallet)
    _print(services.aggregator.compute_earnings(wallet).to_dict())
    return 0


def run_summary(services: Services, wallet: Optional[str]) -> int:
    wallets = [services.subscriptions.validate_wallet(wallet)] if wallet else None
    records = send_daily_summaries(services.storage, services.aggregator, services.dispatcher, wallets)
    _print([record.to_dict() for record in records])
    return 0


def run_monitor(services: Services, interval_minutes: Optional[float]) -> int:
    """Run scheduled passes in the foreground until interrupted."""

    stopped = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Received signal %s, stopping monitor", signum)
        stopped.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    services.monitor.start(interval_minutes)
    try:
        stopped.wait()
    finally:
        services.monitor.stop(timeout=5.0)
    return 0


def run_serve(services: Services, host: Optional[str], port: Optional[int]) -> int:
    config = services.config
    app = create_api_app(ServiceState(services))
    uvicorn.run(
        app,
        host=host or config.api.host,
        port=port or config.api.port,
        log_level=config.monitoring.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bags earnings aggregation and bag monitor")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with the bag monitor")
    serve.add_argument("--host", help="Override API host")
    serve.add_argument("--port", type=int, help="Override API port")

    monitor = subparsers.add_parser("monitor", help="Run the bag monitor without the HTTP API")
    monitor.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Minutes between passes (default: monitor.interval_minutes)",
    )

    subparsers.add_parser("scan", help="Run one monitor pass over all subscribed wallets")

    check = subparsers.add_parser("check", help="Snapshot one wallet and report new earnings")
    check.add_argument("wallet")

    stats = subparsers.add_parser("stats", help="Print the earnings view of one wallet")
    stats.add_argument("wallet")

    summary = subparsers.add_parser("summary", help="Push the daily unclaimed summary to subscribed devices")
    summary.add_argument("wallet", nargs="?", help="Limit the summary to one wallet")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_app_config()
    bootstrap_observability(config)
    services = build_services(config)
    try:
        if args.command == "serve":
            return run_serve(services, args.host, args.port)
        if args.command == "monitor":
            return run_monitor(services, args.interval)
        if args.command == "scan":
            return run_scan(services)
        if args.command == "check":
            return run_check(services, args.wallet)
        if args.command == "summary":
            return run_summary(services, args.wallet)
        return run_stats(services, args.wallet)
    except BagStatsError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
