"""
Cache de assets por hash de contenido.
Evita llamadas duplicadas (y facturadas) al TTS entre preview y render final.
"""

import hashlib
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from diskcache import Cache


def content_key(*parts: str, namespace: str = "tts") -> str:
    """Genera una clave estable a partir del contenido."""
    digest = hashlib.sha256("\0".join(parts).encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


class AssetCache(Protocol):
    """Contrato mínimo: get/put por clave de contenido."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryAssetCache:
    """Cache en memoria (tests y sesiones efímeras)."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class DiskAssetCache:
    """Cache persistente en disco para narraciones y otros assets."""

    def __init__(self, cache_dir: str = "./cache", default_ttl_hours: int = 24 * 7):
        """
        Inicializa el cache.

        Args:
            cache_dir: Directorio para almacenar el cache
            default_ttl_hours: Tiempo de vida por defecto en horas
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache = Cache(str(self.cache_dir))
        self.default_ttl = timedelta(hours=default_ttl_hours)

    def get(self, key: str) -> Optional[Any]:
        """Obtiene un valor del cache (None si no existe o expiró)."""
        return self.cache.get(key)

    def set(self, key: str, value: Any, ttl_hours: Optional[int] = None) -> None:
        """
        Almacena un valor en el cache.

        Args:
            key: Clave para almacenar
            value: Valor a almacenar
            ttl_hours: Tiempo de vida en horas (usa default si no se especifica)
        """
        ttl = timedelta(hours=ttl_hours) if ttl_hours else self.default_ttl
        self.cache.set(key, value, expire=ttl.total_seconds())

    def __contains__(self, key: str) -> bool:
        return key in self.cache

    def clear_all(self) -> None:
        """Limpia todo el cache."""
        self.cache.clear()

    def get_stats(self) -> dict:
        """Obtiene estadísticas del cache."""
        return {
            "size_bytes": self.cache.volume(),
            "items_count": len(self.cache),
            "directory": str(self.cache_dir),
        }

    def close(self) -> None:
        """Cierra la conexión al cache."""
        self.cache.close()
