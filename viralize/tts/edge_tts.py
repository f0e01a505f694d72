"""
Motor Edge-TTS para generación de voz.
Usa voces neurales de Microsoft Edge - rápido, estable, gratuito.
Devuelve el audio codificado (mp3) de una escena; la decodificación vive en audio/.
"""

import logging
import re
from typing import Protocol

import aiohttp
import edge_tts
from edge_tts.exceptions import EdgeTTSException

from ..utils.backoff import TransientUpstreamError

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "es-CO-GonzaloNeural"

_EMOJI_RE = re.compile(
    "["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF"
    "\U00002702-\U000027B0"
    "\U000024C2-\U0001F251"
    "]+",
    flags=re.UNICODE,
)


def clean_text_for_tts(text: str) -> str:
    """
    Limpia texto para síntesis TTS, removiendo elementos problemáticos.
    """
    # Remover URLs
    text = re.sub(r"https?://\S+", "", text)
    text = re.sub(r"www\.\S+", "", text)

    # Remover menciones, hashtags y emojis
    text = re.sub(r"[@#]\w+", "", text)
    text = _EMOJI_RE.sub("", text)

    # Remover caracteres especiales de markdown
    text = re.sub(r"[*_~`|<>{}[\]\\]", "", text)

    # Normalizar espacios y puntuación
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"[.]{2,}", ".", text)
    text = re.sub(r"[!]{2,}", "!", text)
    text = re.sub(r"[?]{2,}", "?", text)

    return text.strip()


class NarrationProvider(Protocol):
    """Contrato del colaborador externo de TTS."""

    voice: str
    rate: str
    pitch: str

    async def synthesize(self, text: str) -> bytes:
        """Devuelve audio codificado. Lanza TransientUpstreamError si es reintentable."""
        ...


class EdgeTTSEngine:
    """Motor de Text-to-Speech usando Edge-TTS (Microsoft Neural Voices)."""

    def __init__(self, voice: str = DEFAULT_VOICE, rate: str = "+0%", pitch: str = "+0Hz"):
        """
        Args:
            voice: Voz a usar (ej: es-CO-GonzaloNeural)
            rate: Velocidad del habla (ej: "+10%", "-5%")
            pitch: Tono de voz (ej: "+5Hz", "-10Hz")
        """
        self.voice = voice
        self.rate = rate
        self.pitch = pitch

    async def synthesize(self, text: str) -> bytes:
        communicate = edge_tts.Communicate(text=text, voice=self.voice, rate=self.rate, pitch=self.pitch)
        audio = bytearray()
        try:
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    audio.extend(chunk["data"])
        except (EdgeTTSException, aiohttp.ClientError, TimeoutError) as e:
            raise TransientUpstreamError(f"Edge-TTS falló: {e}") from e

        if not audio:
            raise TransientUpstreamError("Edge-TTS no devolvió audio")
        return bytes(audio)
