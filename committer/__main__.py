#!/usr/bin/env python3
"""
Git Committer

Synthesizes a large, dated commit history in an existing repository and
pushes it in the background while it grows.

Usage:
    python -m committer
    python -m committer --config my-config.json --total 5000

    # Or with overrides
    COMMITTER_BATCH_SIZE=50000 COMMITTER_MAX_WORKERS=6 python -m committer
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from committer.core.config import CommitterConfig, RunSchedule
from committer.core.types import Result, Ok, Err
from committer.core.errors import SetupError
from committer.core import constants as C
from committer.store.backends import GitObjectStore
from committer.store.content import ContentStore
from committer.history.partitioner import WorkerPool
from committer.history.assembler import HistoryAssembler
from committer.observability.logging import setup_logging, LogLevel
from committer.observability.metrics import MetricsCollector
from committer.pipeline.publisher import GitPushPublisher
from committer.pipeline.publish_queue import PublishQueue
from committer.pipeline.scheduler import BatchScheduler

logger = logging.getLogger("committer")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-committer",
        description="Generate a dated commit history and push it in the background.",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=Path(C.DEFAULT_CONFIG_FILE),
        help=f"configuration file (default: {C.DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="write a starter configuration file and exit",
    )
    parser.add_argument(
        "-C", "--repo",
        type=Path,
        default=None,
        help="repository directory (default: repo_path from the configuration)",
    )
    parser.add_argument(
        "-n", "--total",
        type=int,
        default=None,
        help="number of commits to create instead of the scheduled total",
    )
    parser.add_argument(
        "--no-push",
        action="store_true",
        help="build the history without publishing it",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--metrics", action="store_true", help="print Prometheus metrics at exit")
    return parser


def load_config(args: argparse.Namespace) -> Result[CommitterConfig, SetupError]:
    """File, then environment, then command-line flags."""
    loaded = CommitterConfig.from_file(args.config)
    if loaded.is_err():
        return loaded

    config = loaded.unwrap().with_env_overrides()
    if config.is_err():
        return config
    config = config.unwrap()

    if args.repo is not None:
        config = replace(config, repository=replace(config.repository, path=args.repo))
    if args.no_push:
        config = replace(config, publish=replace(config.publish, enabled=False))
    if args.log_level:
        config = replace(
            config,
            observability=replace(config.observability, log_level=args.log_level.upper()),
        )

    valid = config.validate()
    if valid.is_err():
        return Err(valid.error)
    return Ok(config)


def install_signal_handlers(scheduler: BatchScheduler, run_task: asyncio.Task) -> None:
    """
    First signal stops after the current batch; a second cancels the run.

    Cancelling `run_task` makes the scheduler terminate running workers
    and cancel outstanding publishes.
    """
    loop = asyncio.get_running_loop()
    received = {"count": 0}

    def on_signal(signum: int) -> None:
        received["count"] += 1
        name = signal.Signals(signum).name
        if received["count"] == 1:
            logger.warning(f"Received {name}, stopping after the current batch")
            scheduler.request_stop()
        else:
            logger.warning(f"Received {name} again, cancelling outstanding work")
            run_task.cancel()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, on_signal, signum)
        except (NotImplementedError, RuntimeError):
            # Platforms without loop signal support keep default handling
            pass


async def run(config: CommitterConfig, total: Optional[int] = None, show_metrics: bool = False) -> int:
    """Wire the pipeline together and run it. Returns the exit code."""
    opened = await GitObjectStore.open(config.repository.path)
    if opened.is_err():
        logger.error(str(opened.error))
        return C.EXIT_FAILURE
    store = opened.unwrap()

    clean = await store.is_clean()
    if clean.is_err():
        logger.error(str(clean.error))
        return C.EXIT_FAILURE
    if not clean.unwrap():
        logger.error(str(SetupError.worktree_dirty(str(store.repo_path))))
        return C.EXIT_FAILURE

    ref = config.repository.ref_name
    if ref is None:
        branch = await store.current_branch()
        if branch.is_err():
            logger.error(str(branch.error))
            return C.EXIT_FAILURE
        ref = f"refs/heads/{branch.unwrap()}"

    content = ContentStore(store)
    warmed = await content.warm()
    if warmed.is_err():
        logger.error(f"Could not write content objects: {warmed.error}")
        return C.EXIT_FAILURE

    schedule = RunSchedule.from_config(config.generator)
    metrics = MetricsCollector()

    queue: Optional[PublishQueue] = None
    if config.publish.enabled:
        publisher = GitPushPublisher(store.repo_path, config.repository.remote)
        queue = PublishQueue(publisher, config.publish.push_queue_size, metrics)

    assembler = HistoryAssembler(store, content, config.identity.to_identity(), ref)
    pool = WorkerPool(
        config.generator.effective_workers,
        schedule,
        seed=config.generator.seed,
    )
    scheduler = BatchScheduler(
        pool,
        assembler,
        queue,
        schedule,
        config.generator.effective_batch_size,
        metrics,
    )
    run_task = asyncio.create_task(scheduler.run(total))
    install_signal_handlers(scheduler, run_task)
    try:
        result = await run_task
    except asyncio.CancelledError:
        if not run_task.cancelled():
            raise
        result = None

    logger.info(f"Metrics: {metrics.summary()}")
    if show_metrics:
        print(metrics.export_prometheus())

    if result is None:
        logger.warning("Run cancelled; the batch in progress was discarded")
        return C.EXIT_INTERRUPTED
    if result.is_err():
        logger.error(f"Run failed: {result.error}")
        return C.EXIT_FAILURE

    summary = result.unwrap()
    if config.repository.github_username and queue is not None:
        logger.info(
            f"Repository: https://github.com/{config.repository.github_username}/"
            f"{config.repository.repo_name}"
        )
    if summary.interrupted:
        logger.warning(f"Interrupted after {summary.last_index:,} of {summary.total_commits:,} commits")
        return C.EXIT_INTERRUPTED
    return C.EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.init and args.config.exists():
        print(f"{args.config} already exists; not overwriting.", file=sys.stderr)
        return C.EXIT_FAILURE
    if args.init or not args.config.exists():
        CommitterConfig.write_default(args.config)
        print(f"Wrote starter configuration to {args.config}; edit it and run again.")
        return C.EXIT_OK if args.init else C.EXIT_FAILURE

    config_result = load_config(args)
    if config_result.is_err():
        setup_logging(LogLevel.INFO)
        logger.error(f"Configuration error: {config_result.error}")
        return C.EXIT_FAILURE
    config = config_result.unwrap()

    setup_logging(
        LogLevel.parse(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    try:
        return asyncio.run(run(config, args.total, args.metrics))
    except KeyboardInterrupt:
        return C.EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
