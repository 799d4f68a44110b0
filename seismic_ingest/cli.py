"""CLI entry point: listen (servicio de ingesta) y simulate (tráfico de prueba)."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import signal
import threading
import time
from typing import List, Optional, Sequence, Union

from .common.config import Settings, get_settings
from .core.domain.sample import Sample
from .receiver import IngestService
from .simulator import SENDERS, send_multiple_amplitudes
from .transports.push.transport import PushConfig, PushTransport
from .transports.serial.transport import SerialTransport

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0


def _log_batch(batch: Union[Sample, List[Sample]]) -> None:
    samples = [batch] if isinstance(batch, Sample) else batch
    if not samples:
        return
    first = samples[0]
    logger.info(
        "[LISTEN] %d samples source=%s channel=%s first=%.4f @ %s",
        len(samples),
        first.metadata.get("source"),
        first.channel.value,
        first.amplitude,
        first.timestamp.isoformat(),
    )


def _log_frame_error(error: Exception, raw: str) -> None:
    logger.warning("[LISTEN] Frame error: %s (raw=%r)", error, raw[:80])


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.serial_port:
        overrides["serial_enabled"] = True
        overrides["serial_port"] = args.serial_port
    if args.baud is not None:
        overrides["serial_baud"] = args.baud
    if args.no_push:
        overrides["push_enabled"] = False
    if args.host:
        overrides["push_host"] = args.host
    if args.port is not None:
        overrides["push_port"] = args.port
    return dataclasses.replace(settings, **overrides) if overrides else settings


def run_listen(args: argparse.Namespace) -> int:
    settings = _apply_overrides(get_settings(), args)
    service = IngestService(settings, on_error=_log_frame_error)
    service.subscribe(_log_batch, name="cli-logger")

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    if not service.start():
        logger.error("[LISTEN] Some transports failed to start")
        if not args.keep_going:
            service.stop()
            return 1

    logger.info("[LISTEN] Running, Ctrl+C to stop")
    try:
        while not stop.is_set():
            stop.wait(args.stats_interval)
            if not stop.is_set():
                logger.info("[LISTEN] %s", service.health_check().to_dict())
    finally:
        service.stop()
    return 0


def _wait_connected(transport: PushTransport, timeout: float = CONNECT_TIMEOUT) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if transport.is_connected:
            return True
        time.sleep(0.1)
    return False


def run_simulate(args: argparse.Namespace) -> int:
    settings = get_settings()

    if args.serial_port:
        transport: Union[PushTransport, SerialTransport] = SerialTransport(args.serial_port)
        result = transport.open({"bit_rate": args.baud or settings.serial_baud})
    else:
        transport = PushTransport(
            PushConfig(
                host=args.host or settings.push_host,
                port=args.port if args.port is not None else settings.push_port,
                transport=settings.push_transport,
                ws_path=settings.push_path,
                topic_in=settings.push_topic_in,
                topic_out=settings.push_topic_out,
                username=settings.push_username,
                password=settings.push_password,
                client_id="seismic-simulator",
            )
        )
        result = transport.open()
        if result.success and not _wait_connected(transport):
            logger.error("[SIM] Connection timeout")
            transport.close()
            return 1

    if not result.success:
        logger.error("[SIM] Could not open transport: %s", result.error)
        return 1

    sender = SENDERS[args.kind]
    failures = 0
    try:
        for i in range(args.frames):
            if args.kind == "multiple":
                sent = send_multiple_amplitudes(transport, args.count)
            else:
                sent = sender(transport)
            if not sent.success:
                failures += 1
            if i < args.frames - 1:
                time.sleep(args.interval)
    finally:
        transport.close()

    logger.info("[SIM] Sent %d frames (%d failed)", args.frames - failures, failures)
    return 0 if failures == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Seismic sensor ingest")
    p.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    sub = p.add_subparsers(dest="command", required=True)

    listen = sub.add_parser("listen", help="run the ingest service and log decoded batches")
    listen.add_argument("--serial-port", help="enable the serial transport on this port")
    listen.add_argument("--baud", type=int, default=None)
    listen.add_argument("--host", help="push broker host")
    listen.add_argument("--port", type=int, default=None, help="push broker port")
    listen.add_argument("--no-push", action="store_true", help="disable the push transport")
    listen.add_argument("--stats-interval", type=float, default=30.0)
    listen.add_argument("--keep-going", action="store_true", help="keep running if a transport fails")
    listen.set_defaults(func=run_listen)

    simulate = sub.add_parser("simulate", help="send simulated frames")
    simulate.add_argument("--kind", choices=sorted(SENDERS), default="dual")
    simulate.add_argument("--frames", type=int, default=10)
    simulate.add_argument("--interval", type=float, default=1.0)
    simulate.add_argument("--count", type=int, default=5, help="values per frame for --kind multiple")
    simulate.add_argument("--serial-port", help="write to this serial port instead of the broker")
    simulate.add_argument("--baud", type=int, default=None)
    simulate.add_argument("--host", help="push broker host")
    simulate.add_argument("--port", type=int, default=None, help="push broker port")
    simulate.set_defaults(func=run_simulate)

    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
