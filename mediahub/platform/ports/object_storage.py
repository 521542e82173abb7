from typing import Protocol, runtime_checkable

@runtime_checkable
class ObjectStoragePort(Protocol):
    """Blob store for uploaded media. Called only after the owning unit of work commits."""

    async def put_bytes(self, key: str, data: bytes, content_type: str) -> None: ...

    async def delete(self, key: str) -> None: ...
