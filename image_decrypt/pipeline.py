"""
Batch decryption pipeline: walk, skip processed files, decrypt in parallel, record progress.

Run lifecycle: init -> loading-cache -> running -> draining -> flushing -> closed.
The ledger is always flushed and closed, even when the walk is interrupted.

Author: Lorenzo Albanese (alblor)
"""

import logging
import os
import time
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, FrozenSet, List, NamedTuple, Optional

from .cache_store import CacheStore
from .config import ConfigError, Settings
from .encryption import ENCODING_BASE64, ImageDecryptor
from .scheduler import BoundedWorkerPool
from .walker import iter_encrypted_files

logger = logging.getLogger(__name__)

STATE_INIT = "init"
STATE_LOADING_CACHE = "loading-cache"
STATE_RUNNING = "running"
STATE_DRAINING = "draining"
STATE_FLUSHING = "flushing"
STATE_CLOSED = "closed"


class WorkItem(NamedTuple):
    """One discovered input file and where its plaintext goes."""
    input_path: str
    relative_path: str
    output_path: str

    @classmethod
    def from_path(cls, input_path: Path, input_root: str, output_root: str) -> "WorkItem":
        relative_path = os.path.relpath(input_path, input_root)
        return cls(str(input_path), relative_path, os.path.join(output_root, relative_path))


class BatchDecryptor:
    """Coordinates one resumable decryption run over an input tree."""

    def __init__(self, settings: Settings,
                 decrypt_fn: Optional[Callable[[bytes], bytes]] = None,
                 cache_store: Optional[CacheStore] = None):
        """
        Args:
            settings: Validated settings
            decrypt_fn: Turns file contents into plaintext (default: Triple DES port
                bound to the configured key and IV)
            cache_store: Ledger to use (default: built from settings)
        """
        self.settings = settings
        if decrypt_fn is None:
            decrypt_fn = ImageDecryptor(settings.KEY, settings.IV, settings.CIPHERTEXT_ENCODING)
        self.decrypt_fn = decrypt_fn
        self.cache_store = cache_store or CacheStore(
            settings.CACHE_FILE,
            flush_threshold=settings.CACHE_BATCH_SIZE,
            sync=settings.CACHE_SYNC,
        )
        self.state = STATE_INIT
        self.processed: FrozenSet[str] = frozenset()
        self._counts_lock = Lock()
        self._reset_counts()

    def _reset_counts(self) -> None:
        self.start_time = None
        self.counts = {
            'discovered': 0,
            'submitted': 0,
            'skipped': 0,
            'successful': 0,
            'failed': 0,
            'walk_errors': 0,
        }

    def _count(self, name: str) -> None:
        with self._counts_lock:
            self.counts[name] += 1

    def _set_state(self, state: str) -> None:
        self.state = state
        logger.debug(f"Pipeline state: {state}")

    def _on_walk_error(self, directory: Path, error: OSError) -> None:
        self._count('walk_errors')
        logger.error(f"❌ Cannot scan directory {directory}, skipping subtree: {error}")

    def _log_startup(self) -> None:
        settings = self.settings
        logger.info(f"🖥️  Detected CPUs: {settings.DETECTED_CPUS}")
        logger.info(f"🖥️  Decrypt CPU count: {settings.CPU_NUM}")
        logger.info(f"⚡ Concurrency limit: {settings.CONCURRENCY} ({settings.WORKERS} worker threads)")
        if settings.CIPHERTEXT_ENCODING == ENCODING_BASE64:
            logger.info("ℹ️  Decrypted data is roughly 3/4 the size of the source data")

    def iter_work_items(self):
        """Yield (work item, already processed) for every discovered file."""
        for path in iter_encrypted_files(self.settings.INPUT_DIR, self.settings.EXTENSION,
                                         on_error=self._on_walk_error):
            self._count('discovered')
            item = WorkItem.from_path(path, self.settings.INPUT_DIR, self.settings.OUTPUT_DIR)
            yield item, item.input_path in self.processed

    def _load_processed(self) -> FrozenSet[str]:
        try:
            return self.cache_store.load()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read cache file {self.settings.CACHE_FILE}: {e}") from e

    def plan(self) -> List[WorkItem]:
        """List the files a run would decrypt, without touching output or ledger.

        Raises:
            ConfigError: If the ledger cannot be read
        """
        self._reset_counts()
        self.processed = self._load_processed()
        pending = []
        for item, done in self.iter_work_items():
            if done:
                self._count('skipped')
            else:
                pending.append(item)
        return pending

    def process_item(self, item: WorkItem) -> bool:
        """
        Decrypt one file and record it in the ledger once the output is written.

        Any failure is logged and leaves the item unrecorded so a rerun retries it.
        """
        output_file = Path(item.output_path)
        writing = False
        try:
            ciphertext = Path(item.input_path).read_bytes()
            plaintext = self.decrypt_fn(ciphertext)
            output_file.parent.mkdir(parents=True, exist_ok=True)
            with open(output_file, 'wb') as outf:
                writing = True
                outf.write(plaintext)
        except Exception as e:
            self._count('failed')
            logger.error(f"❌ Failed to decrypt {item.input_path}: {e}")
            if writing:
                self._remove_partial(output_file)
            return False

        self.cache_store.record(item.input_path)
        self._count('successful')
        logger.info(f"✅ Decrypted {item.input_path} -> {item.output_path}")
        return True

    @staticmethod
    def _remove_partial(output_file: Path) -> None:
        try:
            if output_file.exists():
                output_file.unlink()
        except OSError as e:
            logger.warning(f"⚠️  Could not remove partial output {output_file}: {e}")

    def run(self) -> Dict:
        """
        Execute a full run and return a summary.

        Raises:
            ConfigError: If the ledger cannot be opened
        """
        self._reset_counts()
        self.start_time = time.time()
        self._set_state(STATE_INIT)
        self._log_startup()
        try:
            self.cache_store.open()
        except OSError as e:
            raise ConfigError(f"Cannot open cache file {self.settings.CACHE_FILE}: {e}") from e

        self._set_state(STATE_LOADING_CACHE)
        try:
            self.processed = self._load_processed()
        except ConfigError:
            self.cache_store.close()
            raise

        logger.info(f"🔓 Starting decryption of {self.settings.INPUT_DIR} -> {self.settings.OUTPUT_DIR}")
        pool = BoundedWorkerPool(self.settings.CONCURRENCY, max_workers=self.settings.WORKERS)
        try:
            self._set_state(STATE_RUNNING)
            for item, done in self.iter_work_items():
                if done:
                    self._count('skipped')
                    logger.info(f"⏭️  Skipping already processed file: {item.input_path}")
                    continue
                pool.submit(self.process_item, item)
                self._count('submitted')

            self._set_state(STATE_DRAINING)
            pool.join()
        finally:
            # Waits for in-flight items when the walk was interrupted
            pool.shutdown(wait=True)
            self._set_state(STATE_FLUSHING)
            self.cache_store.flush()
            self.cache_store.close()
            self._set_state(STATE_CLOSED)

        return self._summary(pool)

    def _summary(self, pool: BoundedWorkerPool) -> Dict:
        total_time = time.time() - self.start_time
        with self._counts_lock:
            summary = dict(self.counts)
        # Tasks that escaped process_item's own handling
        summary['failed'] += pool.crashed
        summary.update({
            'state': self.state,
            'total_time': total_time,
            'peak_concurrency': pool.peak_active,
            'cache_entries_written': self.cache_store.written,
            'cache_write_failures': self.cache_store.write_failures,
        })
        logger.info(f"🎉 Decryption finished in {total_time:.2f} seconds: "
                    f"{summary['successful']} decrypted, {summary['skipped']} skipped, "
                    f"{summary['failed']} failed")
        if summary['cache_write_failures']:
            logger.error(f"❌ {summary['cache_write_failures']} cache entries could not be written; "
                         "those files will be decrypted again on the next run")
        return summary
