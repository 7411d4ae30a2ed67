"""Command line entry point for kube-timer."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from .cluster import ClusterClient, ClusterError, KubeCluster
from .config import TimerSettings, get_settings
from .document import DocumentDecodeError
from .options import ConfigValidationError, TimerMode, TimerOptions
from .timer import ServiceTimer, SubscriptionError
from .tracking import CollectionTimeoutError, IssueError

logger = logging.getLogger(__name__)

ClusterFactory = Callable[[Path], ClusterClient]


def configure_logging(level: str) -> None:
    """Configure root logging for the timer."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _mode_from_args(args: argparse.Namespace) -> TimerMode:
    if args.delete:
        return TimerMode.DELETE
    if args.delete_all:
        return TimerMode.DELETE_ALL
    if args.async_create:
        return TimerMode.CREATE_ASYNC
    return TimerMode.CREATE


def options_from_args(args: argparse.Namespace, settings: TimerSettings) -> TimerOptions:
    timeout = args.timeout if args.timeout is not None else settings.timeout_seconds
    return TimerOptions(
        mode=_mode_from_args(args),
        definition_file=Path(args.file) if args.file else None,
        name=args.name,
        namespace=args.namespace or settings.namespace,
        started_event_reason=args.started_event_reason,
        finished_event_reason=args.finished_event_reason,
        count=args.count,
        timeout_seconds=timeout,
    )


def cmd_svc(args: argparse.Namespace, *, cluster_factory: ClusterFactory = KubeCluster) -> int:
    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging("INFO")
        logger.error("Invalid settings: %s", exc)
        return 1
    configure_logging("DEBUG" if args.debug else settings.log_level)

    try:
        options = options_from_args(args, settings)
    except ValidationError as exc:
        logger.error("Error validating service timer: %s", exc)
        return 1

    try:
        cluster = cluster_factory(settings.resolve_kubeconfig())
    except ClusterError as exc:
        logger.error("Error building kube client: %s", exc)
        return 1

    try:
        timer = ServiceTimer(cluster, options)
        try:
            timer.validate()
        except (ConfigValidationError, DocumentDecodeError) as exc:
            logger.error("Error validating service timer: %s", exc)
            return 1

        try:
            asyncio.run(timer.start())
        except (IssueError, SubscriptionError, CollectionTimeoutError, DocumentDecodeError) as exc:
            logger.error("Service timer failed: %s", exc)
            return 1
    finally:
        cluster.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kube-timer",
        description="Get the provision/deletion times of the kubernetes resources.",
    )
    sub = parser.add_subparsers(dest="cmd")

    p_svc = sub.add_parser(
        "svc", help="Get the provision/deletion times of LoadBalancer typed services."
    )
    p_svc.add_argument("-f", "--file", help="Service definition file")
    p_svc.add_argument(
        "-c",
        "--count",
        type=int,
        default=1,
        help="Number of services to create, needs metadata.generateName in the definition file",
    )
    p_svc.add_argument(
        "-a",
        "--async",
        dest="async_create",
        action="store_true",
        help="Create all services at once and wait for all of them to be provisioned",
    )
    p_svc.add_argument(
        "--started-event-reason", help="event.reason of the provisioning started event"
    )
    p_svc.add_argument(
        "--finished-event-reason", help="event.reason of the provisioning finished event"
    )
    p_svc.add_argument("-d", "--delete", action="store_true", help="Delete the named service")
    p_svc.add_argument(
        "-D", "--delete-all", action="store_true", help="Delete all LoadBalancer services"
    )
    p_svc.add_argument("-n", "--name", help="Name of the service to delete")
    p_svc.add_argument("--namespace", default=None, help="Namespace of the services")
    p_svc.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for outstanding completions (default: wait forever)",
    )
    p_svc.add_argument("--debug", action="store_true", help="Enable debug logging")
    p_svc.set_defaults(func=cmd_svc)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    exit_code = args.func(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
