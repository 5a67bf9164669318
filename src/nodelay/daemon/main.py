"""Daemon entrypoint: drive provisioning rounds, optionally behind the local app."""

from __future__ import annotations

import argparse
import logging
import signal
from threading import Event
from typing import Any

from src.nodelay.core.provisioner_service import get_provisioner_service

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: Event) -> None:
    def _handler(_sig, _frame) -> None:  # type: ignore[no-untyped-def]
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def summarize_round(result: dict[str, Any]) -> str:
    """One log line per round: decision and launch count per label, errors for failed labels."""
    parts = [
        f"{item['label']}: {item['decision']}, {len(item.get('launch_ids') or [])} launched"
        for item in result.get("rounds") or []
    ]
    parts.extend(f"{item['label']}: failed ({item['error']})" for item in result.get("failures") or [])
    return "; ".join(parts) if parts else "no labels with load"


def run_once(*, label: str | None = None) -> int:
    result = get_provisioner_service().run_round(label=label)
    logger.info("Round: %s", summarize_round(result))
    return 0 if result.get("ok") else 1


def run_daemon(
    *,
    with_app: bool = True,
    host: str = "127.0.0.1",
    port: int = 8000,
    interval_sec: float | None = None,
    stop_event: Event | None = None,
) -> int:
    service = get_provisioner_service()

    if with_app:
        try:
            import uvicorn
        except Exception as exc:  # pragma: no cover - dependency error guard
            raise RuntimeError("uvicorn is required for daemon app mode") from exc

        if service.settings.enabled:
            service.start()
        else:
            logger.info("Provisioner loop disabled in config; rounds run only through the app")
        try:
            uvicorn.run("app.main:app", host=host, port=port, reload=False)
        finally:
            service.stop()
        return 0

    interval = interval_sec if interval_sec is not None else float(service.settings.poll_interval_sec)
    signal_event = stop_event or Event()
    _install_signal_handlers(signal_event)
    logger.info("Running provisioning rounds every %.2fs", interval)
    while not signal_event.is_set():
        result = service.run_round()
        logger.info("Round: %s", summarize_round(result))
        signal_event.wait(timeout=max(0.05, interval))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the nodelay provisioner daemon.")
    parser.add_argument("--host", default="127.0.0.1", help="Local bind host for app mode.")
    parser.add_argument("--port", type=int, default=8000, help="Local bind port for app mode.")
    parser.add_argument(
        "--no-app",
        action="store_true",
        help="Run provisioning rounds in the foreground without the local app server.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single provisioning round, log its outcome and exit.",
    )
    parser.add_argument("--label", default=None, help="Restrict --once to one label.")
    parser.add_argument(
        "--interval-sec",
        type=float,
        default=None,
        help="Seconds between rounds with --no-app (defaults to provisioner.poll_interval_sec).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Root logging level.",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.once:
        return run_once(label=args.label)
    return run_daemon(
        with_app=not args.no_app,
        host=args.host,
        port=args.port,
        interval_sec=max(0.05, float(args.interval_sec)) if args.interval_sec is not None else None,
    )


if __name__ == "__main__":
    raise SystemExit(main())
