"""CLI entry point for the receipt sync."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .ai import create_ai
from .categorizer import Categorizer
from .config import AppConfig, load_config
from .errors import ReceiptSyncError
from .notifications import parse_file_created
from .share import FileShare, create_share
from .state import ProcessedFiles
from .sync import ReceiptSync

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="receipt-summary",
        description="Extract, categorize and collect receipt line items into one ledger",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="log at DEBUG level"
    )

    sub = parser.add_subparsers(dest="command")

    # sync
    sub.add_parser("sync", help="process every unprocessed receipt on the share")

    # sync-file
    file_parser = sub.add_parser(
        "sync-file", help="process the file announced by a file-created notification"
    )
    file_parser.add_argument(
        "--event",
        type=str,
        required=True,
        metavar="FILE",
        help="notification payload (JSON), '-' reads stdin",
    )

    # pending
    sub.add_parser("pending", help="list receipts not processed yet")

    # ledger
    sub.add_parser("ledger", help="print the ledger")

    # serve
    sub.add_parser("serve", help="full sync now, then on the configured schedule")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    load_dotenv()
    config = load_config(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging.level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        match args.command:
            case "sync":
                asyncio.run(_cmd_sync(config))
            case "sync-file":
                asyncio.run(_cmd_sync_file(config, args))
            case "pending":
                asyncio.run(_cmd_pending(config))
            case "ledger":
                asyncio.run(_cmd_ledger(config))
            case "serve":
                asyncio.run(_cmd_serve(config))
    except ReceiptSyncError as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


def _build(config: AppConfig) -> tuple[FileShare, ReceiptSync]:
    share = create_share(config)
    ai = create_ai(config)
    categorizer = Categorizer(
        ai,
        batch_size=config.sync.batch_size,
        max_attempts=config.sync.max_attempts,
    )
    sync = ReceiptSync(
        share,
        ai,
        categorizer=categorizer,
        tabular_content_types=config.sync.tabular_content_types,
    )
    return share, sync


async def _cmd_sync(config: AppConfig) -> None:
    share, sync = _build(config)
    try:
        done = await sync.sync_all()
    finally:
        await share.aclose()
    print(f"{len(done)} files processed")
    for f in done:
        print(f"  {f.name}")


async def _cmd_sync_file(config: AppConfig, args) -> None:
    if args.event == "-":
        payload = sys.stdin.read()
    else:
        payload = Path(args.event).read_text(encoding="utf-8")

    file = parse_file_created(payload)
    if file is None:
        print("not a file-created notification, nothing to do")
        return

    share, sync = _build(config)
    try:
        processed = await sync.sync_file(file)
    finally:
        await share.aclose()
    if processed:
        print(f"processed {file.name}")
    else:
        print(f"{file.name} was already processed")


async def _cmd_pending(config: AppConfig) -> None:
    share = create_share(config)
    try:
        state = ProcessedFiles.from_text(await share.read_state())
        pending = state.unprocessed(await share.list_files())
    finally:
        await share.aclose()

    if not pending:
        print("no unprocessed receipts")
        return
    print(f"unprocessed receipts: {len(pending)}")
    for f in pending:
        print(f"  {f.last_modified.isoformat()}  {f.name}  [{f.fingerprint}]")


async def _cmd_ledger(config: AppConfig) -> None:
    share = create_share(config)
    try:
        text = await share.read_ledger()
    finally:
        await share.aclose()
    print(text)


async def _cmd_serve(config: AppConfig) -> None:
    from .scheduler import SyncScheduler

    share, sync = _build(config)
    scheduler = SyncScheduler(config, sync)
    try:
        sync.trigger_full_sync()
        scheduler.start()
        for job_id, next_run in scheduler.next_runs().items():
            logger.info("job %s next run: %s", job_id, next_run)
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
        await sync.wait_idle()
        await share.aclose()
