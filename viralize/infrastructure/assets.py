"""
Resolutor de Assets
Convierte cada escena en (imagen decodificada, clip de voz o silencio).
Los fallos transitorios se reintentan y luego degradan a placeholder / silencio;
nunca abortan el video completo.
"""
import asyncio
import logging
from io import BytesIO
from typing import Callable, Dict, NamedTuple, Optional

import httpx
from PIL import Image

from ..audio.engine import AudioDecodeError, decode_clip
from ..domain.errors import ImageDecodeError
from ..domain.models import SILENCE, AudioClip, ResolvedAsset, Script
from ..tts.edge_tts import NarrationProvider, clean_text_for_tts
from ..utils.backoff import APIError, RateLimiter, RetryPolicy
from ..utils.cache import AssetCache, MemoryAssetCache, content_key
from .pexels import PexelsClient, placeholder_url

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]

# Errores que degradan a fallback en lugar de propagarse
_RECOVERABLE = (APIError, httpx.HTTPError, ImageDecodeError)


class ResolvedImage(NamedTuple):
    image: Optional[Image.Image]
    is_placeholder: bool


def decode_image(data: bytes) -> Image.Image:
    """
    Decodifica bytes a un raster RGB completamente cargado en memoria.

    Raises:
        ImageDecodeError: si los bytes no son una imagen legible
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Imagen ilegible ({len(data)} bytes): {e}") from e


class AssetResolver:
    """
    Resuelve imágenes y narraciones de un guión.

    Imágenes en paralelo; narración con concurrencia acotada (por defecto
    secuencial) porque la API de voz limita la tasa de peticiones.
    """

    def __init__(
        self,
        images: PexelsClient,
        narrator: NarrationProvider,
        cache: Optional[AssetCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sample_rate: int = 44100,
        narration_concurrency: int = 1,
    ):
        self.images = images
        self.narrator = narrator
        self.cache = cache if cache is not None else MemoryAssetCache()
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.sample_rate = sample_rate
        self.narration_concurrency = max(1, narration_concurrency)

    # ------------------------------------------------------------------
    # Imágenes
    # ------------------------------------------------------------------

    async def _search(self, keyword: str) -> str:
        await self.rate_limiter.wait_if_needed("pexels")
        return await self.images.find_image_url(keyword)

    async def _fetch(self, url: str) -> Image.Image:
        data = await self.retry_policy.call(self.images.download, url)
        return decode_image(data)

    async def resolve_image(self, keyword: str, scene_id: int) -> ResolvedImage:
        """
        Busca y decodifica la imagen de una escena.

        Si falla, usa el placeholder determinista de la escena; si también
        falla, la escena queda sin imagen (fondo negro).
        """
        if keyword.strip():
            try:
                url = await self.retry_policy.call(self._search, keyword)
                return ResolvedImage(await self._fetch(url), False)
            except _RECOVERABLE as e:
                logger.warning(f"Imagen '{keyword}' (escena {scene_id}) falló: {e}. Usando placeholder")

        try:
            image = await self._fetch(placeholder_url(keyword or "scene", scene_id))
            return ResolvedImage(image, True)
        except _RECOVERABLE as e:
            logger.error(f"Placeholder de la escena {scene_id} también falló: {e}. Fondo negro")
            return ResolvedImage(None, True)

    # ------------------------------------------------------------------
    # Narración
    # ------------------------------------------------------------------

    async def _synthesize(self, text: str) -> bytes:
        await self.rate_limiter.wait_if_needed("tts")
        return await self.narrator.synthesize(text)

    async def resolve_narration(self, text: str) -> AudioClip:
        """
        Devuelve el clip PCM de la narración o SILENCE.

        El audio codificado se cachea por hash de (voz, velocidad, tono, texto limpio).
        """
        cleaned = clean_text_for_tts(text or "")
        if not cleaned:
            return SILENCE

        key = content_key(self.narrator.voice, self.narrator.rate, self.narrator.pitch, cleaned)
        payload = self.cache.get(key)
        if payload is None:
            try:
                payload = await self.retry_policy.call(self._synthesize, cleaned)
            except (APIError, httpx.HTTPError) as e:
                logger.warning(f"Narración agotó reintentos, escena en silencio: {e}")
                return SILENCE
            self.cache.set(key, payload)
        else:
            logger.debug(f"Narración en cache: {key}")

        try:
            return decode_clip(payload, self.sample_rate)
        except AudioDecodeError as e:
            logger.warning(f"Narración ilegible, escena en silencio: {e}")
            return SILENCE

    # ------------------------------------------------------------------
    # Guión completo
    # ------------------------------------------------------------------

    async def resolve_all(
        self,
        script: Script,
        on_status: Optional[StatusCallback] = None,
    ) -> Dict[int, ResolvedAsset]:
        """Resuelve todas las escenas. Devuelve {scene_id: ResolvedAsset}."""
        notify = on_status or (lambda message: None)
        semaphore = asyncio.Semaphore(self.narration_concurrency)
        total = len(script.scenes)

        async def image_for(scene) -> ResolvedImage:
            return await self.resolve_image(scene.image_keyword, scene.id)

        async def narration_for(position: int, scene) -> AudioClip:
            async with semaphore:
                notify(f"Generando voz {position}/{total}...")
                return await self.resolve_narration(scene.narration)

        notify(f"Buscando {total} imágenes...")
        images, clips = await asyncio.gather(
            asyncio.gather(*(image_for(s) for s in script.scenes)),
            asyncio.gather(*(narration_for(i + 1, s) for i, s in enumerate(script.scenes))),
        )

        assets = {}
        for scene, resolved, clip in zip(script.scenes, images, clips):
            assets[scene.id] = ResolvedAsset(
                scene_id=scene.id,
                image=resolved.image,
                audio=clip,
                image_is_placeholder=resolved.is_placeholder,
            )
        missing = sum(1 for a in assets.values() if a.image is None)
        notify(f"Assets listos ({missing} escenas sin imagen)")
        return assets
