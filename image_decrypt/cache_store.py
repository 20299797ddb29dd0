"""
Processed-file ledger for resumable batch decryption.

The ledger is an append-only UTF-8 text file holding one input path per line.
Paths recorded during a run are buffered in memory and written in batches;
the coordinator forces a final flush before closing. The file handle itself is
unbuffered, so a flushed entry has either reached the OS or been counted lost.

Author: Lorenzo Albanese (alblor)
"""

import logging
import os
from pathlib import Path
from threading import Lock
from typing import BinaryIO, FrozenSet, List, Optional, Union

logger = logging.getLogger(__name__)


class CacheStore:
    """Thread-safe, batched writer for the processed-file ledger."""

    def __init__(self, cache_file: Union[str, Path], flush_threshold: int = 1000,
                 sync: bool = False):
        """
        Args:
            cache_file: Path of the ledger file
            flush_threshold: Buffered entries that trigger an immediate flush
            sync: fsync the ledger after every flush
        """
        if flush_threshold < 1:
            raise ValueError("flush_threshold must be at least 1")
        self.cache_file = Path(cache_file)
        self.flush_threshold = flush_threshold
        self.sync = sync
        self._buffer: List[str] = []
        self._handle: Optional[BinaryIO] = None
        self._lock = Lock()
        self.recorded = 0
        self.written = 0
        self.write_failures = 0

    def open(self) -> None:
        """Open the ledger for appending, creating it and its directory if absent."""
        with self._lock:
            if self._handle is not None:
                return
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.cache_file, 'ab', buffering=0)
        logger.info(f"📒 Cache file opened: {self.cache_file}")

    def load(self) -> FrozenSet[str]:
        """
        Read every path recorded by previous runs.

        A missing ledger is an empty set. Duplicate lines collapse into one entry.
        """
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                processed = frozenset(line.rstrip('\r\n') for line in f if line.strip())
        except FileNotFoundError:
            processed = frozenset()
        logger.info(f"📒 Loaded {len(processed)} processed paths from {self.cache_file}")
        return processed

    def record(self, path: str) -> None:
        """Buffer a completed path, flushing when the threshold is reached."""
        with self._lock:
            self._buffer.append(path)
            self.recorded += 1
            if len(self._buffer) >= self.flush_threshold:
                self._flush_locked()

    def flush(self) -> int:
        """Write all buffered paths to the ledger. Returns the number written."""
        with self._lock:
            return self._flush_locked()

    def _flush_locked(self) -> int:
        if not self._buffer:
            return 0
        if self._handle is None:
            raise RuntimeError("Cache file is not open")

        written = 0
        for path in self._buffer:
            try:
                self._write_all((path + "\n").encode('utf-8'))
                written += 1
            except OSError as e:
                self.write_failures += 1
                logger.error(f"❌ Failed to write cache entry {path}: {e}")
        self._buffer.clear()
        self.written += written

        if self.sync and written:
            try:
                os.fsync(self._handle.fileno())
            except OSError as e:
                # Entries already reached the OS; only their durability is in doubt
                logger.error(f"❌ Failed to sync cache file {self.cache_file}: {e}")

        logger.debug(f"Flushed {written} entries to {self.cache_file}")
        return written

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            n = self._handle.write(view)
            if not n:
                raise OSError(f"Short write to {self.cache_file}")
            view = view[n:]

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def close(self) -> None:
        """Release the ledger handle. Buffered entries are not flushed here."""
        with self._lock:
            if self._handle is None:
                return
            try:
                self._handle.close()
            except OSError as e:
                logger.error(f"❌ Failed to close cache file {self.cache_file}: {e}")
            finally:
                self._handle = None
            if self._buffer:
                logger.warning(f"⚠️  Cache closed with {len(self._buffer)} unflushed entries")
