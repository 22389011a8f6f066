from pathlib import Path

from disclosure_worker.database.models import DocumentRecord
from disclosure_worker.storage.exceptions import UnsafeBlobPathError


class FileLoader:
    """Resolves the local path of a document blob and reads its bytes."""

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def load(self, document: DocumentRecord) -> bytes:
        """Read document bytes from disk.

        Raises:
            FileNotFoundError: if the file does not exist at resolved path.
            UnsafeBlobPathError: if blob_path points outside the files root.
        """
        path = self.resolve_path(document.blob_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return path.read_bytes()

    def resolve_path(self, blob_path: str) -> Path:
        root = self._files_root.resolve()
        path = (root / blob_path.lstrip("/")).resolve()
        if root != path and root not in path.parents:
            raise UnsafeBlobPathError(f"Blob path '{blob_path}' escapes the files root")
        return path
