from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileStore(Protocol):
    def exists(self, path: PathLike) -> bool:
        ...

    def delete(self, path: PathLike) -> bool:
        """Remove `path`. A missing file is not an error (returns False)."""
        ...


class LocalFileStore:
    def exists(self, path: PathLike) -> bool:
        return Path(path).is_file()

    def delete(self, path: PathLike) -> bool:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            logger.debug("File already gone: %s", path)
            return False
        logger.info("Deleted file: %s", path)
        return True

    def ensure_dir(self, path: PathLike) -> Path:
        directory = Path(path)
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created directory: %s", directory)
        return directory
