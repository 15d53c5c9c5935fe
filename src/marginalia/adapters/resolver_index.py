import logging
from pathlib import Path, PurePosixPath

from ..core.ports import PathResolver

logger = logging.getLogger(__name__)


class VaultIndex:
    """Sorted list of vault-relative file paths; hidden files and folders are skipped."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._files: list[str] | None = None

    def refresh(self) -> None:
        files = []
        if self.root.exists():
            for p in self.root.rglob("*"):
                rel = p.relative_to(self.root)
                if any(part.startswith(".") for part in rel.parts):
                    continue
                if p.is_file():
                    files.append(rel.as_posix())
        self._files = sorted(files)
        logger.debug("Indexed %d files under %s", len(self._files), self.root)

    def files(self) -> list[str]:
        if self._files is None:
            self.refresh()
        return list(self._files)

    def markdown_files(self) -> list[str]:
        return [f for f in self.files() if f.endswith(".md")]


class VaultPathResolver(PathResolver):
    def __init__(self, index: VaultIndex):
        self.index = index

    def resolve(self, name: str) -> str | None:
        name = name.strip().strip("/")
        if not name:
            return None
        files = self.index.files()
        known = set(files)
        if name in known:
            return name
        if f"{name}.md" in known:
            return f"{name}.md"
        base = PurePosixPath(name).name
        hits = [
            f
            for f in files
            if PurePosixPath(f).name in (base, f"{base}.md")
        ]
        if not hits:
            return None
        # Several notes share the basename: shortest path wins, then lexicographic.
        return min(hits, key=lambda f: (len(f), f))
