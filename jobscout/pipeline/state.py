from __future__ import annotations

import asyncio
import hashlib
import json
import time
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from loguru import logger
from pydantic import ValidationError
import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from jobscout.common.utils import ensure_dir, utc_now_iso
from jobscout.config.settings import Settings

from .errors import CacheError
from .models import Description

KEY_PREFIX = "jobscout"


def cache_key(listing_id: str, version: str = "v1") -> str:
    """One key per listing id; the id is embedded verbatim so distinct ids never collide."""
    return f"{KEY_PREFIX}:{version}:job_desc:{listing_id}"


def _parse_iso(ts: str) -> datetime:
    return datetime.fromisoformat(str(ts).replace("Z", "+00:00"))


class DescriptionCache(Protocol):
    async def get(self, key: str) -> Optional[Description]: ...

    async def set(self, key: str, description: Description, ttl_sec: int) -> None: ...

    async def ping(self) -> bool: ...


class MemoryDescriptionCache:
    """Process-local cache; entries expire on read."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}
        self.gets = 0
        self.sets = 0

    async def get(self, key: str) -> Optional[Description]:
        self.gets += 1
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return Description.model_validate_json(raw)

    async def set(self, key: str, description: Description, ttl_sec: int) -> None:
        self.sets += 1
        self._entries[key] = (self._clock() + ttl_sec, description.model_dump_json())

    async def ping(self) -> bool:
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class FileDescriptionCache:
    """
    One JSON document per key under `root`, wrapped in cache_meta so stale or
    foreign-version entries read as misses.
    """

    def __init__(self, root: Path, *, version: str = "v1") -> None:
        self.root = Path(root)
        self.version = version

    def _path(self, key: str) -> Path:
        return self.root / f"{hashlib.sha1(key.encode('utf-8')).hexdigest()}.json"

    def _read(self, key: str) -> Optional[Description]:
        p = self._path(key)
        if not p.exists():
            return None
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            meta = data.get("cache_meta") or {}
            if not isinstance(meta, dict):
                raise ValueError("cache_meta is not an object")
            payload = data.get("payload")
            if meta.get("key") != key or meta.get("cache_version") != self.version:
                return None
            expires_at = meta.get("expires_at")
            if expires_at and datetime.now(timezone.utc) >= _parse_iso(expires_at):
                return None
            if not isinstance(payload, dict):
                return None
            return Description.model_validate(payload)
        except (OSError, TypeError, ValueError, ValidationError) as exc:
            raise CacheError(f"unreadable cache entry {p.name}: {exc}", data={"key": key}) from exc

    def _write(self, key: str, description: Description, ttl_sec: int) -> None:
        cached_at = datetime.now(timezone.utc)
        meta = {
            "key": key,
            "cache_version": self.version,
            "cached_at": utc_now_iso(cached_at),
            "expires_at": utc_now_iso(cached_at + timedelta(seconds=ttl_sec)),
        }
        try:
            ensure_dir(self.root)
            p = self._path(key)
            tmp = p.with_name(f"{p.stem}.{uuid.uuid4().hex}.tmp")
            tmp.write_text(
                json.dumps(
                    {"cache_meta": meta, "payload": description.model_dump(mode="json")},
                    ensure_ascii=False,
                    indent=2,
                ),
                encoding="utf-8",
            )
            tmp.replace(p)
        except OSError as exc:
            raise CacheError(f"cache write failed: {exc}", data={"key": key}) from exc

    async def get(self, key: str) -> Optional[Description]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, description: Description, ttl_sec: int) -> None:
        await asyncio.to_thread(self._write, key, description, ttl_sec)

    async def ping(self) -> bool:
        try:
            ensure_dir(self.root)
        except OSError as exc:
            raise CacheError(f"cache directory {self.root} unusable: {exc}") from exc
        return True


class RedisDescriptionCache:
    def __init__(self, url: str, *, client=None) -> None:
        if client is None:
            client = redis_asyncio.from_url(url, socket_connect_timeout=2, socket_timeout=5)
        self.url = url
        self._client = client

    async def get(self, key: str) -> Optional[Description]:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise CacheError(f"redis GET failed: {exc}", data={"key": key}) from exc
        if raw is None:
            return None
        try:
            return Description.model_validate_json(raw)
        except ValidationError as exc:
            raise CacheError(f"undecodable cache entry: {exc}", data={"key": key}) from exc

    async def set(self, key: str, description: Description, ttl_sec: int) -> None:
        try:
            await self._client.set(key, description.model_dump_json(), ex=int(ttl_sec))
        except RedisError as exc:
            raise CacheError(f"redis SET failed: {exc}", data={"key": key}) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            raise CacheError(f"redis unreachable at {self.url}: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def build_cache(cfg: Settings) -> DescriptionCache:
    backend = cfg.cache_backend
    if backend == "redis":
        logger.info("description cache: redis at {}", cfg.redis_url)
        return RedisDescriptionCache(cfg.redis_url)
    if backend == "memory":
        logger.info("description cache: in-memory")
        return MemoryDescriptionCache()
    if backend == "file":
        logger.info("description cache: files under {}", cfg.cache_dir)
        return FileDescriptionCache(cfg.cache_dir, version=cfg.cache_version)
    raise ValueError(f"Unsupported cache backend '{backend}'")
