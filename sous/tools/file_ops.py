"""File operations: read, write, create, search, list."""

from pathlib import Path

from ..logger import get_logger

_log = get_logger(__name__)


class FileOperationError(Exception):
    pass


class FileOps:
    def __init__(self, project_root: str):
        self.project_root = Path(project_root).resolve()

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        try:
            p.relative_to(self.project_root)
        except ValueError:
            raise FileOperationError(
                f"Access denied: '{path}' is outside project root ({self.project_root})"
            )
        return p

    def read_file(self, path: str) -> str:
        """Return the file's text exactly as stored (no newline translation)."""
        fp = self._resolve(path)
        if not fp.exists():
            raise FileOperationError(f"File not found: {path}")
        if not fp.is_file():
            raise FileOperationError(f"Not a file: {path}")
        data = fp.read_bytes()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data.decode("latin-1")

    def _write(self, path: str, content: str) -> Path:
        fp = self._resolve(path)
        if fp.is_dir():
            raise FileOperationError(f"Is a directory: {path}")
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_bytes(content.encode("utf-8"))
        _log.info("Wrote %s (%d bytes)", fp, len(content))
        return fp

    def write_file(self, path: str, content: str) -> str:
        self._write(path, content)
        return "File edited successfully"

    def create_file(self, path: str, content: str) -> str:
        self._write(path, content)
        return "File created successfully"

    def search_file(self, path: str, query: str) -> str:
        content = self.read_file(path)
        matches = [line for line in content.split("\n") if query in line]
        return "\n".join(matches)

    def list_files(self, dir_path: str) -> str:
        dp = self._resolve(dir_path)
        if not dp.exists():
            raise FileOperationError(f"Directory not found: {dir_path}")
        if not dp.is_dir():
            raise FileOperationError(f"Not a directory: {dir_path}")
        names = []
        for entry in sorted(dp.iterdir(), key=lambda e: e.name):
            names.append(entry.name + "/" if entry.is_dir() else entry.name)
        return "\n".join(names)
