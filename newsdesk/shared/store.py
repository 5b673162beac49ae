"""Pending queue: one independently addressable JSON object per entry."""
import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Set, Union

from pydantic import TypeAdapter, ValidationError
from storage3.utils import StorageException
from supabase import AsyncClient, acreate_client

from newsdesk.config import Settings, settings as default_settings
from newsdesk.schemas.models import CandidateItem, PendingEntry, ScrapedDocument
from newsdesk.shared.errors import StoreUnavailable
from newsdesk.shared.extractors import canonicalize_url

logger = logging.getLogger(__name__)

_entry_adapter = TypeAdapter(PendingEntry)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class BlobStorage(Protocol):
    """Minimal key/blob interface the pending store needs."""

    async def list_keys(self, prefix: str, limit: int) -> List[str]: ...

    async def read(self, key: str) -> bytes: ...

    async def write(self, key: str, data: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return 0.0


class LocalDirectoryStorage:
    """Blob storage backed by one file per key under a root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def list_keys(self, prefix: str, limit: int) -> List[str]:
        def _list() -> List[str]:
            folder = self.root / prefix
            if not folder.is_dir():
                return []
            # Newest writes first, so the cap drops the oldest entries.
            paths = sorted(folder.glob("*.json"), key=_mtime, reverse=True)
            return [f"{prefix}/{p.name}" for p in paths[:limit]]
        return await asyncio.to_thread(_list)

    async def read(self, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._path(key).read_bytes)
        except FileNotFoundError as e:
            raise KeyError(key) from e

    async def write(self, key: str, data: bytes) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        await asyncio.to_thread(_write)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


class SupabaseStorage:
    """Blob storage backed by a Supabase Storage bucket."""

    def __init__(self, config: Optional[Settings] = None):
        """Initialize Supabase storage wrapper; the client is created lazily."""
        config = config or default_settings
        self.url = config.supabase_url
        self.key = config.supabase_service_key
        self.bucket = config.pending_bucket
        self._client: Optional[AsyncClient] = None

    async def _bucket(self):
        if not self.url or not self.key:
            raise StoreUnavailable("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
        if self._client is None:
            self._client = await acreate_client(self.url, self.key)
        return self._client.storage.from_(self.bucket)

    async def list_keys(self, prefix: str, limit: int) -> List[str]:
        bucket = await self._bucket()
        objects = await bucket.list(
            prefix,
            {"limit": limit, "offset": 0, "sortBy": {"column": "created_at", "order": "desc"}},
        )
        return [
            f"{prefix}/{obj['name']}"
            for obj in objects or []
            if obj.get("name", "").endswith(".json")
        ]

    async def read(self, key: str) -> bytes:
        bucket = await self._bucket()
        try:
            return await bucket.download(key)
        except StorageException as e:
            status = str(getattr(e, "status", "") or "")
            if status in ("400", "404") or "not found" in str(e).lower():
                raise KeyError(key) from e
            raise

    async def write(self, key: str, data: bytes) -> None:
        bucket = await self._bucket()
        await bucket.upload(
            key,
            data,
            {"content-type": "application/json", "cache-control": "0", "upsert": "true"},
        )

    async def delete(self, key: str) -> None:
        bucket = await self._bucket()
        # Removing a missing object is a no-op on the Storage API.
        await bucket.remove([key])


def create_storage(config: Optional[Settings] = None) -> BlobStorage:
    """Build the blob storage selected by ``store_backend``."""
    config = config or default_settings
    if config.store_backend == "local":
        return LocalDirectoryStorage(config.local_store_path)
    if config.store_backend == "supabase":
        return SupabaseStorage(config)
    raise ValueError(f"Unknown store_backend: {config.store_backend}")


class PendingStore:
    """Durable queue of candidate and scraped items awaiting review.

    Each entry is its own object at ``<namespace>/<id>.json``; no mutation
    ever rewrites a shared list, so producers writing different ids never
    contend.
    """

    def __init__(
        self,
        storage: Optional[BlobStorage] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize pending store."""
        config = config or default_settings
        self.storage = storage if storage is not None else create_storage(config)
        self.namespace = config.pending_namespace
        self.list_limit = config.pending_list_limit

    def _key(self, entry_id: str) -> str:
        if not entry_id or "/" in entry_id or entry_id.startswith("."):
            raise ValueError(f"Invalid pending entry id: {entry_id!r}")
        return f"{self.namespace}/{entry_id}.json"

    @staticmethod
    def _decode(data: Union[bytes, str]) -> Union[CandidateItem, ScrapedDocument]:
        return _entry_adapter.validate_python(json.loads(data))

    async def list(self) -> List[Union[CandidateItem, ScrapedDocument]]:
        """All readable entries, newest first. Unreadable entries are skipped."""
        try:
            keys = await self.storage.list_keys(self.namespace, self.list_limit)
        except StoreUnavailable as e:
            logger.warning(f"Pending store unavailable, returning empty list: {e.message}")
            return []

        if not keys:
            return []

        results = await asyncio.gather(
            *(self.storage.read(key) for key in keys),
            return_exceptions=True,
        )

        entries = []
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                logger.warning(f"Skipping unreadable pending entry {key}: {result}")
                continue
            try:
                entries.append(self._decode(result))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Skipping corrupt pending entry {key}: {e}")

        entries.sort(key=lambda entry: _aware(entry.recency), reverse=True)
        return entries

    async def get(self, entry_id: str) -> Optional[Union[CandidateItem, ScrapedDocument]]:
        """Fetch one entry, or None when it is missing or unreadable."""
        key = self._key(entry_id)
        try:
            data = await self.storage.read(key)
        except StoreUnavailable as e:
            logger.warning(f"Pending store unavailable: {e.message}")
            return None
        except KeyError:
            return None
        try:
            return self._decode(data)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Corrupt pending entry {key}: {e}")
            return None

    async def put(self, entry: Union[CandidateItem, ScrapedDocument]) -> None:
        """Write or overwrite exactly the one entry named by ``entry.id``."""
        payload = entry.model_dump_json(by_alias=True).encode("utf-8")
        await self.storage.write(self._key(entry.id), payload)

    async def delete(self, entry_id: str) -> None:
        """Remove one entry. Deleting a missing id is not an error."""
        await self.storage.delete(self._key(entry_id))

    async def existing_links(self) -> Set[str]:
        """Canonical links of every entry currently queued."""
        links = set()
        for entry in await self.list():
            link = entry.link if isinstance(entry, CandidateItem) else entry.url
            links.add(canonicalize_url(link))
        return links
