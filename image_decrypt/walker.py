"""Recursive discovery of encrypted image files."""

import logging
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

logger = logging.getLogger(__name__)

WalkErrorHandler = Callable[[Path, OSError], None]


def iter_encrypted_files(root: Union[str, Path], extension: str = ".webp",
                         on_error: Optional[WalkErrorHandler] = None) -> Iterator[Path]:
    """
    Yield every regular file under ``root`` whose name ends with ``extension``.

    Directories are traversed in sorted order but never yielded. Symlinked
    directories are not followed. When a directory cannot be listed, that
    subtree is abandoned and the error is handed to ``on_error``; without a
    handler the error propagates to the caller.

    Args:
        root: Directory to scan
        extension: Name ending to match, compared case-sensitively
        on_error: Called with (directory, error) for unreadable directories

    Yields:
        Absolute paths of matching files, one pass only
    """
    root_path = Path(root).absolute()

    def scan_recursive(current_dir: Path) -> Iterator[Path]:
        try:
            entries = sorted(current_dir.iterdir())
        except OSError as e:
            if on_error is None:
                raise
            on_error(current_dir, e)
            return

        for entry in entries:
            if entry.is_dir():
                if entry.is_symlink():
                    logger.debug(f"Not following symlinked directory: {entry}")
                    continue
                yield from scan_recursive(entry)
            elif entry.is_file() and entry.name.endswith(extension):
                yield entry

    yield from scan_recursive(root_path)
