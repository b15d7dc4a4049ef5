"""Synchronization of remote receipts into the ledger."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Iterable

from .ai import ReceiptAI
from .categorizer import Categorizer
from .ledger import AnalysisLedger
from .models import LineItem, RemoteFile
from .share import FileShare
from .state import ProcessedFiles
from .tabular import parse_export

logger = logging.getLogger(__name__)

DEFAULT_TABULAR_CONTENT_TYPES = ("text/csv",)


class SyncPhase(enum.Enum):
    IDLE = "idle"
    LOAD_STATE = "load_state"
    LIST_CANDIDATES = "list_candidates"
    FETCH = "fetch"
    EXTRACT = "extract"
    CATEGORIZE = "categorize"
    MERGE = "merge"
    PERSIST_LEDGER = "persist_ledger"
    PERSIST_STATE = "persist_state"


class ReceiptSync:
    """Drives the per-file pipeline and owns the sync lock.

    Every run loads ledger and processed state fresh, and persists both after
    each file before moving on, so an error in one file keeps the progress of
    the files before it. The failed file stays unprocessed and is picked up
    again by the next run. Only one run executes at a time; a second caller
    waits for the lock and then starts from the state the first one left.
    """

    def __init__(
        self,
        share: FileShare,
        ai: ReceiptAI,
        categorizer: Categorizer | None = None,
        tabular_content_types: Iterable[str] = DEFAULT_TABULAR_CONTENT_TYPES,
    ) -> None:
        self._share = share
        self._ai = ai
        self._categorizer = categorizer or Categorizer(ai)
        self._tabular_content_types = frozenset(
            t.lower() for t in tabular_content_types
        )
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self.phase = SyncPhase.IDLE

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug("sync phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    async def sync_all(self) -> list[RemoteFile]:
        """Process every file on the share that is not processed yet.

        Returns:
            The files processed by this run, oldest first.
        """
        async with self._lock:
            try:
                ledger, state = await self._load()

                self._enter(SyncPhase.LIST_CANDIDATES)
                candidates = await self._share.list_files()
                pending = state.unprocessed(candidates)
                logger.info(
                    "full sync: %d candidates, %d unprocessed",
                    len(candidates),
                    len(pending),
                )

                done: list[RemoteFile] = []
                for file in pending:
                    ledger, state = await self._process(file, ledger, state)
                    done.append(file)
                logger.info("full sync finished: %d files processed", len(done))
                return done
            finally:
                self._enter(SyncPhase.IDLE)

    async def sync_file(self, file: RemoteFile) -> bool:
        """Process a single known file.

        Returns:
            ``False`` if the file was already processed, ``True`` otherwise.
        """
        async with self._lock:
            try:
                ledger, state = await self._load()
                if file in state:
                    logger.info("skipping %s, already processed", file.name)
                    return False
                await self._process(file, ledger, state)
                return True
            finally:
                self._enter(SyncPhase.IDLE)

    async def read_ledger(self) -> str:
        """Return the current ledger text as stored on the share."""
        return await self._share.read_ledger()

    def trigger_full_sync(self) -> asyncio.Task:
        """Start :meth:`sync_all` in the background and return immediately."""
        return self._spawn(self.sync_all(), "full sync")

    def trigger_file_sync(self, file: RemoteFile) -> asyncio.Task:
        """Start :meth:`sync_file` in the background and return immediately."""
        return self._spawn(self.sync_file(file), f"sync of {file.name}")

    async def wait_idle(self) -> None:
        """Wait until every triggered background run has finished."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _spawn(self, coro, what: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=what)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_outcome)
        return task

    @staticmethod
    def _log_outcome(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("%s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "%s failed", task.get_name(), exc_info=(type(exc), exc, exc.__traceback__)
            )

    async def _load(self) -> tuple[AnalysisLedger, ProcessedFiles]:
        self._enter(SyncPhase.LOAD_STATE)
        state = ProcessedFiles.from_text(await self._share.read_state())
        ledger = AnalysisLedger.from_text(await self._share.read_ledger())
        logger.info(
            "loaded state with %d processed files and ledger with %d items",
            len(state),
            len(ledger),
        )
        return ledger, state

    async def _extract(self, file: RemoteFile, content: bytes) -> list[LineItem]:
        content_type = (file.content_type or "").split(";")[0].strip().lower()
        if content_type in self._tabular_content_types:
            return parse_export(content)
        return await self._ai.extract_line_items(content, file.name)

    async def _process(
        self, file: RemoteFile, ledger: AnalysisLedger, state: ProcessedFiles
    ) -> tuple[AnalysisLedger, ProcessedFiles]:
        logger.info("processing %s (%s)", file.name, file.fingerprint)

        self._enter(SyncPhase.FETCH)
        content = await self._share.fetch(file.name)

        self._enter(SyncPhase.EXTRACT)
        extracted = await self._extract(file, content)

        self._enter(SyncPhase.CATEGORIZE)
        categorized = await self._categorizer.categorize(extracted)

        self._enter(SyncPhase.MERGE)
        merged = ledger.merge(categorized)
        logger.info(
            "%s: %d line items, %d new in ledger",
            file.name,
            len(categorized),
            len(merged) - len(ledger),
        )

        self._enter(SyncPhase.PERSIST_LEDGER)
        await self._share.write_ledger(merged.to_text())

        self._enter(SyncPhase.PERSIST_STATE)
        state = state.mark_done(file)
        await self._share.write_state(state.to_text())

        return merged, state
