import hashlib
import os
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class BlobStorageService:
    """
    Opaque blob store for extracted images.
    Blobs are content-addressed under a per-date folder, so re-writing the same image is a no-op.
    """

    def __init__(self, storage_dir: str):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def put(self, folder: str, data: bytes, extension: str) -> str:
        digest = hashlib.sha256(data).hexdigest()[:32]
        blob_ref = f"{folder}/{digest}.{extension.lstrip('.').lower() or 'bin'}"
        path = self.storage_dir / blob_ref
        if path.exists():
            return blob_ref

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".part")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        return blob_ref

    def path_for(self, blob_ref: str) -> Path:
        return self.storage_dir / blob_ref

    def exists(self, blob_ref: str) -> bool:
        return self.path_for(blob_ref).is_file()

    def delete(self, blob_ref: str) -> bool:
        path = self.path_for(blob_ref)
        if not path.exists():
            return False
        path.unlink()
        return True
