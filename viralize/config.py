"""
Configuración del sistema.
Lee config/config.yaml (si existe) y luego aplica overrides del entorno (.env).
"""

import logging
import os
from pathlib import Path
from typing import Literal, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .utils.backoff import RetryPolicy

logger = logging.getLogger(__name__)

BackendName = Literal["local", "remote", "capture"]

# Variables de entorno -> campo de Settings
ENV_OVERRIDES = {
    "PEXELS_API_KEY": "pexels_api_key",
    "VIRALIZE_BACKEND": "backend",
    "VIRALIZE_RENDER_SERVER": "render_server_url",
    "VIRALIZE_TTS_VOICE": "tts_voice",
    "VIRALIZE_OUTPUT_DIR": "output_dir",
    "VIRALIZE_CACHE_DIR": "cache_dir",
    "FFMPEG_BINARY": "ffmpeg_binary",
}


class RetrySettings(BaseModel):
    max_attempts: int = 5
    min_wait: float = 1.0
    max_wait: float = 30.0
    rate_limit_wait: float = 15.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            min_wait=self.min_wait,
            max_wait=self.max_wait,
            rate_limit_wait=self.rate_limit_wait,
        )


class Settings(BaseModel):
    """Parámetros de una sesión de render."""

    # Formato fijo de exportación (Shorts/Reels)
    width: int = 1080
    height: int = 1920
    fps: int = 30
    preview_width: int = 540
    preview_height: int = 960

    sample_rate: int = 44100
    tail_padding: float = Field(0.5, ge=0)

    zoom_rate: float = 0.10
    caption_max_chars: int = 140

    backend: BackendName = "local"
    render_server_url: str = "http://localhost:3000"
    remote_timeout: float = 300.0
    min_artifact_bytes: int = 1024

    output_dir: str = "./output"
    cache_dir: str = "./cache"

    ffmpeg_binary: Optional[str] = None
    ffplay_binary: str = "ffplay"

    pexels_api_key: Optional[str] = None
    tts_voice: str = "es-CO-GonzaloNeural"
    tts_rate: str = "+0%"
    narration_concurrency: int = Field(1, ge=1)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @property
    def export_size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def preview_size(self) -> Tuple[int, int]:
        return self.preview_width, self.preview_height


def load_settings(config_path: str = "config/config.yaml", **overrides) -> Settings:
    """
    Carga la configuración.

    Orden de prioridad: argumentos > variables de entorno > YAML > defaults.
    """
    load_dotenv()
    data: dict = {}

    path = Path(config_path)
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.debug(f"Configuración cargada desde {path}")

    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[field_name] = value

    data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings.model_validate(data)
