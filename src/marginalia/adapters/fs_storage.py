import logging
from pathlib import Path, PurePosixPath

from ..core.ports import FileStore

logger = logging.getLogger(__name__)


class FsFileStore(FileStore):
    """Vault-relative POSIX paths on the local filesystem."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Path escapes the vault: {path!r}")
        return self.root.joinpath(*rel.parts)

    def read(self, path: str) -> bytes:
        return self._path(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        p = self._path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), path)

    def exists(self, path: str) -> bool:
        return self._path(path).exists()

    def create_folder(self, path: str) -> None:
        self._path(path).mkdir(parents=True, exist_ok=True)
