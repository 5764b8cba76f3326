"""Command-line entry point for the rTC load generator."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Sequence

from .config import ConfigError, LoadTestConfig, build_config, load_config
from .control import ControlHttpServer, ControlRouter
from .demo_controller import DemoController
from .record_sink import CsvRecordStore, RecordSink, new_log_path
from .rtc_client import RtcClient
from .scheduler import Scheduler

LOGGER = logging.getLogger("washload")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="rTC queue load generator")
    parser.add_argument("--config", help="Path to load-test configuration (TOML); built-in defaults when omitted")
    parser.add_argument("--queue", type=float, help="number of seconds between car queueing")
    parser.add_argument("--get", type=float, help="number of seconds between calls to get queue")
    parser.add_argument("--move", type=float, help="number of seconds between calls to move lead car")
    parser.add_argument("--client", help="ip of rTC")
    parser.add_argument("--port", type=int, help="port for rTC")
    parser.add_argument("--listen-port", type=int, help="port for the HTTP control surface")
    parser.add_argument("--log-dir", help="directory for the load-test CSV")
    parser.add_argument("--log-level", help="logging level (INFO/DEBUG/...)")
    parser.add_argument("--demo-controller", action="store_true", help="start an in-process demo rTC on 127.0.0.1 and target it")
    return parser.parse_args(argv)


def resolve_config(args: argparse.Namespace) -> LoadTestConfig:
    config = load_config(args.config) if args.config else build_config({})
    flags = {
        "controller": {"host": args.client, "port": args.port},
        "intervals": {"queue": args.queue, "get": args.get, "move": args.move},
        "control": {"listen_port": args.listen_port},
        "output": {"log_dir": args.log_dir, "log_level": args.log_level},
    }
    # CLI flags go through the same validation as the file
    checked = build_config({section: {k: v for k, v in values.items() if v is not None} for section, values in flags.items()})

    controller = config.controller
    if args.client is not None:
        controller = replace(controller, host=checked.controller.host)
    if args.port is not None:
        controller = replace(controller, port=checked.controller.port)

    routines = config.routines
    if args.queue is not None:
        routines = replace(routines, queue_interval=checked.routines.queue_interval)
    if args.get is not None:
        routines = replace(routines, get_interval=checked.routines.get_interval)
    if args.move is not None:
        routines = replace(routines, move_interval=checked.routines.move_interval)

    control = config.control
    if args.listen_port is not None:
        control = replace(control, listen_port=checked.control.listen_port)

    output = config.output
    if args.log_dir is not None:
        output = replace(output, log_dir=Path(args.log_dir))
    if args.log_level is not None:
        output = replace(output, log_level=checked.output.log_level)

    return replace(config, controller=controller, routines=routines, control=control, output=output)


def build_client(config: LoadTestConfig, address: tuple[str, int] | None = None) -> RtcClient:
    settings = config.controller
    host, port = address or (settings.host, settings.port)
    return RtcClient(
        host,
        port,
        connect_timeout=settings.connect_timeout,
        io_timeout=settings.io_timeout,
        read_timeout=settings.read_timeout,
        close_grace=settings.close_grace,
        delete_reads_reply=settings.delete_reads_reply,
    )


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    try:
        config = resolve_config(args)
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    logging.basicConfig(level=getattr(logging, config.output.log_level, logging.INFO), format="%(levelname)s %(name)s: %(message)s")

    demo: DemoController | None = None
    address = None
    if args.demo_controller:
        demo = DemoController("127.0.0.1", 0)
        demo.start()
        address = demo.address

    log_path = new_log_path(config.output.log_dir)
    try:
        store = CsvRecordStore(log_path)
    except OSError as exc:
        LOGGER.critical("unable to create csv file %s: %s", log_path, exc)
        if demo is not None:
            demo.stop()
        raise SystemExit(1) from exc
    LOGGER.info("writing records to %s", log_path)

    client = build_client(config, address)
    sink = RecordSink(store, capacity=config.output.sink_capacity)
    scheduler = Scheduler(client, sink, config.routines)
    router = ControlRouter(scheduler, cleanup_package=config.routines.cleanup_package)
    try:
        server = ControlHttpServer(config.control.listen_host, config.control.listen_port, router)
    except OSError as exc:
        LOGGER.critical("unable to bind control surface on %s:%s: %s", config.control.listen_host, config.control.listen_port, exc)
        store.close()
        if demo is not None:
            demo.stop()
        raise SystemExit(1) from exc

    LOGGER.info("targeting rTC at %s:%s", *client.address)
    scheduler.start()
    try:
        server.serve_forever()
    finally:
        scheduler.shutdown()
        store.close()
        if demo is not None:
            demo.stop()


def run(argv: Iterable[str] | None = None) -> None:
    main(list(argv) if argv is not None else None)


if __name__ == "__main__":
    main()
