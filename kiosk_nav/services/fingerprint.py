import hashlib
import json
from typing import Any, NamedTuple


class ResourceKey(NamedTuple):
    """Ключ коллекции: тип ресурса и, для поэтажных ресурсов, ID этажа."""

    resource: str
    floor_id: int | None = None

    def __str__(self) -> str:
        if self.floor_id is None:
            return self.resource
        return f"{self.resource}_{self.floor_id}"


def fingerprint(payload: Any) -> bytes:
    """MD5 от канонического JSON полезной нагрузки (16 байт)."""
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.md5(data.encode("utf-8"), usedforsecurity=False).digest()


class FingerprintCache:
    """
    Отпечатки последних записанных коллекций.

    Живёт только в памяти процесса: это оптимизация, а не источник истины,
    поэтому clear() можно вызвать в любой момент: следующая синхронизация
    просто перезапишет всё.
    """

    def __init__(self) -> None:
        self._digests: dict[ResourceKey, bytes] = {}

    def __len__(self) -> int:
        return len(self._digests)

    def __contains__(self, key: ResourceKey) -> bool:
        return key in self._digests

    def matches(self, key: ResourceKey, digest: bytes) -> bool:
        return self._digests.get(key) == digest

    def remember(self, key: ResourceKey, digest: bytes) -> None:
        self._digests[key] = digest

    def forget(self, key: ResourceKey) -> None:
        self._digests.pop(key, None)

    def forget_resource(self, resource: str) -> None:
        """Сбрасывает все ключи ресурса, включая поэтажные."""
        for key in [k for k in self._digests if k.resource == resource]:
            del self._digests[key]

    def clear(self) -> None:
        self._digests.clear()
