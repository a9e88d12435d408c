import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os

if TYPE_CHECKING:
    from meeting_brain.context import Context

from meeting_brain.services.manager import BaseAsyncLoggingService

LOG_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

# Largest number of queued records written in one file append
MAX_BATCH_SIZE = 256

# -------------------------------------------------------------- #
# Async Logging Service
# -------------------------------------------------------------- #


class AsyncLoggingService(BaseAsyncLoggingService):
    """
    Pipeline log sink.

    Callers enqueue records and return at once; one writer task drains the
    queue in batches and appends each batch to the log file with a single
    aiofiles write. When the file grows past max_bytes it is rotated to
    `<name>.1` (one backup kept).
    """

    def __init__(
        self,
        context: "Context",
        log_dir: str = "logs",
        log_file: str | None = None,
        use_timestamp: bool = True,
        console_output: bool = True,
        min_level: str = "DEBUG",
        max_bytes: int = 10 * 1024 * 1024,
    ):
        """
        Args:
            context: Application context
            log_dir: Directory holding the log file
            log_file: File name; when None a `pipeline_<timestamp>.log` or
                `pipeline.log` name is chosen from use_timestamp
            use_timestamp: Timestamp the generated file name
            console_output: Mirror every record to stdout
            min_level: Records below this level are dropped before queueing
            max_bytes: Rotate the file once it reaches this size
        """
        super().__init__(context)
        self.console_output = console_output
        self.min_level = LOG_LEVELS.get(min_level.upper(), LOG_LEVELS["DEBUG"])
        self.max_bytes = max_bytes

        if log_file is None:
            suffix = datetime.now().strftime("_%Y-%m-%d_%H-%M-%S") if use_timestamp else ""
            log_file = f"pipeline{suffix}.log"

        self.log_dir = Path(log_dir)
        self.log_path = self.log_dir / log_file

        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._writer_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._writer_task = asyncio.create_task(self._drain_forever())

        await self.info(f"Pipeline log started: {self.log_path}")

    async def on_close(self) -> None:
        """Stop the writer and write out every record still queued."""
        if self._writer_task:
            # Sentinel: the writer drains everything queued before it, then exits
            self._queue.put_nowait(None)
            await self._writer_task
            self._writer_task = None

        leftover = self._take_batch(limit=None)
        await self._write_batch([record for record in leftover if record is not None])

    # -------------------------------------------------------------- #
    # Public Logging Methods
    # -------------------------------------------------------------- #

    async def log(self, message: str, level: str = "INFO") -> None:
        level = level.upper()
        if LOG_LEVELS.get(level, 0) < self.min_level:
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        self._queue.put_nowait(f"[{timestamp}] [{level:<8}] {message}")

    async def debug(self, message: str) -> None:
        await self.log(message, "DEBUG")

    async def info(self, message: str) -> None:
        await self.log(message, "INFO")

    async def warning(self, message: str) -> None:
        await self.log(message, "WARNING")

    async def error(self, message: str) -> None:
        await self.log(message, "ERROR")

    async def critical(self, message: str) -> None:
        await self.log(message, "CRITICAL")

    # -------------------------------------------------------------- #
    # Writer
    # -------------------------------------------------------------- #

    async def _drain_forever(self) -> None:
        while True:
            batch = [await self._queue.get(), *self._take_batch(limit=MAX_BATCH_SIZE - 1)]
            records = [record for record in batch if record is not None]
            await self._write_batch(records)
            if len(records) < len(batch):
                return

    def _take_batch(self, limit: int | None) -> list[str | None]:
        batch = []
        while not self._queue.empty() and (limit is None or len(batch) < limit):
            batch.append(self._queue.get_nowait())
        return batch

    async def _write_batch(self, batch: list[str]) -> None:
        if not batch:
            return

        text = "\n".join(batch) + "\n"
        if self.console_output:
            sys.stdout.write(text)
            sys.stdout.flush()

        try:
            await self._rotate_if_needed()
            async with aiofiles.open(self.log_path, mode="a", encoding="utf-8") as f:
                await f.write(text)
        except OSError as e:
            print(
                f"[ERROR] Could not write {len(batch)} log record(s) to {self.log_path}: {e}",
                file=sys.stderr,
                flush=True,
            )

    async def _rotate_if_needed(self) -> None:
        if not await aiofiles.os.path.exists(self.log_path):
            return
        if (await aiofiles.os.stat(self.log_path)).st_size < self.max_bytes:
            return

        backup = self.log_path.with_name(self.log_path.name + ".1")
        await aiofiles.os.replace(self.log_path, backup)
