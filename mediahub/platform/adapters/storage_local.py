import asyncio
import os
from mediahub.platform.ports.object_storage import ObjectStoragePort
from mediahub.core.config import settings

class LocalFilesystemStorage(ObjectStoragePort):
    def __init__(self, root: str | None = None):
        self.root = os.path.abspath(root or settings.LOCAL_STORAGE_ROOT)
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        safe = key.strip("/").replace("..", "")
        return os.path.join(self.root, safe)

    def _write(self, path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    async def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), data)

    async def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            await asyncio.to_thread(os.remove, path)
