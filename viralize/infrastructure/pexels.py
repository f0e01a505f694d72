"""
Cliente Pexels - Infraestructura
Busca fotos verticales por keyword y descarga sus bytes.
Sin API key usa imágenes con semilla de Picsum (deterministas).
"""
import logging
import os
from typing import Optional
from urllib.parse import quote

import httpx

from ..utils.backoff import APIError, raise_for_upstream_status

logger = logging.getLogger(__name__)

PICSUM_URL = "https://picsum.photos/seed/{seed}/1080/1920"


def seeded_image_url(seed: str) -> str:
    """URL de imagen estable para una semilla dada."""
    return PICSUM_URL.format(seed=quote(seed, safe=""))


def placeholder_url(keyword: str, scene_id: int) -> str:
    """Placeholder determinista por identidad de escena."""
    return seeded_image_url(f"{keyword}-{scene_id}")


class PexelsClient:
    """
    Cliente para interactuar con la API de Pexels (fotos).
    Todos los errores HTTP se traducen a la taxonomía de backoff.
    """

    BASE_URL = "https://api.pexels.com"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("PEXELS_API_KEY")
        if not self.api_key:
            logger.warning("🚫 PEXELS_API_KEY no encontrada. Usando imágenes de Picsum.")

        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @property
    def has_key(self) -> bool:
        return bool(self.api_key) and len(self.api_key) > 10

    async def find_image_url(self, keyword: str) -> str:
        """
        Busca UNA foto vertical para la keyword.

        Sin API key (o sin resultados) devuelve una URL de Picsum con semilla.
        """
        if not self.has_key:
            return seeded_image_url(keyword)

        response = await self.client.get(
            f"{self.BASE_URL}/v1/search",
            params={"query": keyword, "orientation": "portrait", "per_page": 1},
            headers={"Authorization": self.api_key},
        )
        raise_for_upstream_status(response)
        # Un 200 con cuerpo que no es JSON (portal cautivo, proxy) es un fallo de upstream
        try:
            photos = response.json().get("photos") or []
            if not photos:
                logger.info(f"Sin resultados en Pexels para '{keyword}', usando Picsum")
                return seeded_image_url(keyword)
            src = photos[0].get("src") or {}
            return src.get("portrait") or src.get("original") or seeded_image_url(keyword)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise APIError(f"Respuesta inválida de Pexels: {e}") from e

    async def download(self, url: str) -> bytes:
        """Descarga los bytes de una imagen."""
        response = await self.client.get(url)
        raise_for_upstream_status(response)
        return response.content

    async def close(self):
        await self.client.aclose()
