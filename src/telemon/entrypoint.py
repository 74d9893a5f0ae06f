"""
CLI entrypoint that runs the device worker supervisor.

Accepts either individual device config files or a config file list. With a
file list, SIGHUP re-reads it and reconciles the running workers; with
individual files, SIGHUP asks every worker to re-read its own file.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import signal
from collections.abc import Callable, Sequence
from pathlib import Path

from .core.config import ConfigError, explore_config, resolve_config_files
from .core.settings import SupervisorSettings, load_settings
from .core.supervisor import Supervisor

LOGGER = logging.getLogger(__name__)
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _supervisor_log_handler(settings: SupervisorSettings) -> logging.Handler | None:
    """
    Return the rotating handler writing to ``settings.log_file``, attaching it
    to the root logger on first use. Repeated calls reuse the same handler.
    """

    if settings.log_file is None:
        return None
    log_file = settings.log_file.expanduser().resolve()
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.handlers.RotatingFileHandler) and (
            Path(handler.baseFilename) == log_file
        ):
            return handler

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=settings.log_max_mb * 1024 * 1024,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        LOGGER.warning("Logging to %s disabled: %s", log_file, exc)
        return None
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    return handler


def configure_logging(settings: SupervisorSettings) -> None:
    numeric_level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    _supervisor_log_handler(settings)


def _add_signal_handler(
    loop: asyncio.AbstractEventLoop,
    sig: signal.Signals,
    callback: Callable[..., object],
    *args: object,
) -> bool:
    try:
        loop.add_signal_handler(sig, callback, *args)
    except NotImplementedError:
        LOGGER.warning("%s handling is not supported by this event loop.", sig.name)
        return False
    return True


def _install_signal_handlers(supervisor: Supervisor, stop_event: asyncio.Event) -> None:
    """
    SIGINT/SIGTERM set ``stop_event`` and SIGHUP schedules a reload pass.

    Where the loop cannot install handlers, Ctrl+C still ends ``main`` through
    KeyboardInterrupt and reload is unavailable.
    """

    loop = asyncio.get_running_loop()
    reload_tasks: set[asyncio.Task[object]] = set()

    def _request_shutdown(sig_name: str) -> None:
        if not stop_event.is_set():
            LOGGER.info("Received %s, stopping workers.", sig_name)
            stop_event.set()

    def _request_reload() -> None:
        LOGGER.info("Received SIGHUP, reloading configuration.")
        task = asyncio.create_task(supervisor.reload(), name="telemon-reload")
        reload_tasks.add(task)
        task.add_done_callback(reload_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        _add_signal_handler(loop, sig, _request_shutdown, sig.name)
    sighup = getattr(signal, "SIGHUP", None)
    if sighup is not None:
        _add_signal_handler(loop, sighup, _request_reload)


async def run_supervisor(
    *,
    settings: SupervisorSettings,
    config_files: Sequence[str],
    config_file_list: Path | None,
) -> None:
    """Start the workers and run until interrupted."""

    supervisor = Supervisor(settings)
    await supervisor.start(config_files, config_file_list=config_file_list)

    stop_event = asyncio.Event()
    _install_signal_handlers(supervisor, stop_event)
    LOGGER.info(
        "telemon running %d workers. Send SIGHUP to reload, Ctrl+C to stop.",
        len(supervisor.known_devices()),
    )
    try:
        await stop_event.wait()
    finally:
        await supervisor.stop()


def parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Supervisor for per-device telemetry workers.")
    parser.add_argument(
        "--config",
        dest="config_files",
        action="append",
        default=[],
        metavar="FILE",
        help="Device config file (repeatable).",
    )
    parser.add_argument(
        "--config-file-list",
        type=Path,
        default=None,
        metavar="FILE",
        help="JSON document listing device config files; re-read on SIGHUP.",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Supervisor settings file (YAML/TOML/JSON); TELEMON_* env vars also apply.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Python logging level (default: INFO).",
    )
    parser.add_argument(
        "--explore-config",
        action="store_true",
        help="Print a skeleton device config and exit.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.explore_config:
        print(explore_config())
        return 0
    try:
        settings = load_settings(args.settings, overrides={"log_level": args.log_level})
        configure_logging(settings)
        config_files = resolve_config_files(args.config_files, args.config_file_list)
        asyncio.run(
            run_supervisor(
                settings=settings,
                config_files=config_files,
                config_file_list=args.config_file_list,
            )
        )
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user.")
        return 0
    except ConfigError as exc:
        LOGGER.error("Configuration failed: %s", exc)
        return 2
    except Exception:  # pragma: no cover - surfaced to operator
        LOGGER.exception("telemon supervisor crashed.")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())


__all__ = ["configure_logging", "main", "parse_args", "run_supervisor"]
