"""Fixtures compartidos: guiones mínimos, proveedores falsos y settings pequeños."""

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from viralize.audio.wav import encode_wav
from viralize.config import Settings
from viralize.domain.models import Script
from viralize.utils.backoff import RateLimiter, RetryPolicy, TransientUpstreamError


def make_script(*scenes, title="Guion de prueba") -> Script:
    return Script.model_validate({"title": title, "scenes": list(scenes)})


def jpeg_bytes(color=(200, 40, 40), size=(64, 96)) -> bytes:
    out = BytesIO()
    Image.new("RGB", size, color).save(out, "JPEG", quality=90)
    return out.getvalue()


def tone_wav(seconds=0.5, sample_rate=22050, amplitude=0.5) -> bytes:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return encode_wav(amplitude * np.sin(2 * np.pi * 330 * t), sample_rate)


async def no_sleep(_seconds):
    return None


class FakeImages:
    """Proveedor de imágenes en memoria. `failing` = keywords/urls que fallan."""

    def __init__(self, fail_search=(), fail_download=(), payloads=None):
        self.fail_search = set(fail_search)
        self.fail_download = set(fail_download)
        self.payloads = payloads or {}
        self.searches = []
        self.downloads = []
        self.closed = False

    async def find_image_url(self, keyword):
        self.searches.append(keyword)
        if keyword in self.fail_search or "*" in self.fail_search:
            raise TransientUpstreamError(f"search {keyword}")
        return f"https://images.test/{keyword}"

    async def download(self, url):
        self.downloads.append(url)
        if "*" in self.fail_download or any(part in url for part in self.fail_download):
            raise TransientUpstreamError(f"download {url}")
        for part, payload in self.payloads.items():
            if part in url:
                return payload
        return jpeg_bytes()

    async def close(self):
        self.closed = True


class FakeNarrator:
    """TTS falso que devuelve WAV. Los textos en `failing` fallan siempre."""

    voice = "test-voice"
    rate = "+0%"
    pitch = "+0Hz"

    def __init__(self, failing=(), seconds=0.5):
        self.failing = set(failing)
        self.seconds = seconds
        self.calls = []

    async def synthesize(self, text):
        self.calls.append(text)
        if text in self.failing:
            raise TransientUpstreamError(f"503 para '{text}'")
        return tone_wav(self.seconds)


@pytest.fixture
def scenario_script():
    return make_script(
        {"id": 1, "duration": 2, "narration": "Hello", "overlayText": "HI", "imageKeyword": "sun"},
        {"id": 2, "duration": 3, "narration": "", "overlayText": "BYE", "imageKeyword": "moon"},
    )


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, sleep=no_sleep)


@pytest.fixture
def rate_limiter():
    limiter = RateLimiter()
    limiter.set_limit("tts", requests=1000, period_seconds=60)
    limiter.set_limit("pexels", requests=1000, period_seconds=60)
    return limiter


@pytest.fixture
def small_settings(tmp_path):
    return Settings(
        width=180,
        height=320,
        preview_width=90,
        preview_height=160,
        fps=10,
        sample_rate=22050,
        output_dir=str(tmp_path / "output"),
        cache_dir=str(tmp_path / "cache"),
    )
