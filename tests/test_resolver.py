import asyncio

import httpx
import pytest
from PIL import Image

from viralize.domain.errors import ImageDecodeError
from viralize.domain.models import SILENCE, PCMClip
from viralize.infrastructure.assets import AssetResolver, decode_image
from viralize.infrastructure.pexels import PexelsClient, placeholder_url, seeded_image_url
from viralize.utils.backoff import APIError, RateLimitError
from viralize.utils.cache import MemoryAssetCache

from conftest import FakeImages, FakeNarrator, jpeg_bytes, make_script


def resolver(images, narrator, retry_policy, rate_limiter, **kwargs):
    return AssetResolver(
        images,
        narrator,
        retry_policy=retry_policy,
        rate_limiter=rate_limiter,
        sample_rate=22050,
        **kwargs,
    )


def test_decode_image_returns_loaded_rgb():
    image = decode_image(jpeg_bytes(size=(30, 50)))
    assert image.mode == "RGB"
    assert image.size == (30, 50)
    with pytest.raises(ImageDecodeError):
        decode_image(b"<html>not an image</html>")


def test_placeholder_is_deterministic_per_scene():
    assert placeholder_url("sun", 1) == placeholder_url("sun", 1)
    assert placeholder_url("sun", 1) != placeholder_url("sun", 2)
    assert "seed/sun-1/" in placeholder_url("sun", 1)


def test_primary_image_resolves(retry_policy, rate_limiter):
    images = FakeImages()
    result = asyncio.run(resolver(images, FakeNarrator(), retry_policy, rate_limiter).resolve_image("sun", 1))
    assert isinstance(result.image, Image.Image)
    assert result.is_placeholder is False
    assert images.searches == ["sun"]


def test_failed_search_falls_back_to_placeholder(retry_policy, rate_limiter):
    images = FakeImages(fail_search={"sun"})
    result = asyncio.run(resolver(images, FakeNarrator(), retry_policy, rate_limiter).resolve_image("sun", 1))
    assert result.image is not None
    assert result.is_placeholder is True
    assert images.searches == ["sun"] * 3
    assert images.downloads == [placeholder_url("sun", 1)]


def test_undecodable_image_falls_back_to_placeholder(retry_policy, rate_limiter):
    images = FakeImages(payloads={"images.test": b"garbage"})
    result = asyncio.run(resolver(images, FakeNarrator(), retry_policy, rate_limiter).resolve_image("sun", 4))
    assert result.is_placeholder is True
    assert result.image is not None


def test_all_image_sources_failing_leaves_scene_without_image(retry_policy, rate_limiter):
    images = FakeImages(fail_search={"*"}, fail_download={"*"})
    result = asyncio.run(resolver(images, FakeNarrator(), retry_policy, rate_limiter).resolve_image("sun", 1))
    assert result.image is None
    assert result.is_placeholder is True


def test_blank_keyword_goes_straight_to_placeholder(retry_policy, rate_limiter):
    images = FakeImages()
    result = asyncio.run(resolver(images, FakeNarrator(), retry_policy, rate_limiter).resolve_image("  ", 3))
    assert result.is_placeholder is True
    assert images.searches == []


def test_empty_narration_is_silence_without_calling_tts(retry_policy, rate_limiter):
    narrator = FakeNarrator()
    clip = asyncio.run(resolver(FakeImages(), narrator, retry_policy, rate_limiter).resolve_narration("  🔥 #viral "))
    assert clip is SILENCE
    assert narrator.calls == []


def test_narration_is_cached_by_voice_and_text(retry_policy, rate_limiter):
    narrator = FakeNarrator()
    cache = MemoryAssetCache()
    res = resolver(FakeImages(), narrator, retry_policy, rate_limiter, cache=cache)

    async def run():
        return await res.resolve_narration("Hola mundo"), await res.resolve_narration("Hola mundo")

    first, second = asyncio.run(run())
    assert isinstance(first, PCMClip)
    assert first.sample_rate == 22050
    assert first.duration == pytest.approx(0.5, abs=0.01)
    assert len(second.samples) == len(first.samples)
    assert narrator.calls == ["Hola mundo"]
    assert len(cache) == 1


def test_changing_rate_or_pitch_misses_the_cache(retry_policy, rate_limiter):
    narrator = FakeNarrator()
    res = resolver(FakeImages(), narrator, retry_policy, rate_limiter, cache=MemoryAssetCache())

    async def run():
        await res.resolve_narration("Hola mundo")
        narrator.rate = "+20%"
        await res.resolve_narration("Hola mundo")
        narrator.pitch = "-5Hz"
        await res.resolve_narration("Hola mundo")

    asyncio.run(run())
    assert narrator.calls == ["Hola mundo"] * 3


def test_exhausted_narration_only_silences_its_scene(scenario_script, retry_policy, rate_limiter):
    narrator = FakeNarrator(failing={"Hello"})
    statuses = []
    res = resolver(FakeImages(), narrator, retry_policy, rate_limiter)
    assets = asyncio.run(res.resolve_all(scenario_script, on_status=statuses.append))

    assert set(assets) == {1, 2}
    assert assets[1].audio is SILENCE
    assert assets[2].audio is SILENCE
    assert narrator.calls == ["Hello"] * 3
    assert assets[1].image is not None and assets[2].image is not None
    assert statuses[0] == "Buscando 2 imágenes..."
    assert "Generando voz 1/2..." in statuses
    assert statuses[-1].startswith("Assets listos")


def test_resolve_all_keeps_other_scenes_when_one_fails(retry_policy, rate_limiter):
    script = make_script(
        {"id": 1, "duration": 1, "narration": "uno", "imageKeyword": "a"},
        {"id": 2, "duration": 1, "narration": "dos", "imageKeyword": "b"},
    )
    images = FakeImages(fail_search={"a"}, fail_download={"seed/a-1"})
    assets = asyncio.run(resolver(images, FakeNarrator(failing={"uno"}), retry_policy, rate_limiter).resolve_all(script))

    assert assets[1].image is None
    assert assets[1].audio is SILENCE
    assert assets[2].image is not None
    assert assets[2].image_is_placeholder is False
    assert isinstance(assets[2].audio, PCMClip)


def _pexels(handler, api_key="clave-pexels-de-prueba"):
    return PexelsClient(api_key=api_key, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def test_pexels_search_asks_for_portrait_photos():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"photos": [{"src": {"portrait": "https://img.test/p.jpg"}}]})

    client = _pexels(handler)
    assert asyncio.run(client.find_image_url("playa")) == "https://img.test/p.jpg"
    assert seen["params"]["orientation"] == "portrait"
    assert seen["params"]["query"] == "playa"
    assert seen["auth"] == "clave-pexels-de-prueba"


def test_pexels_without_results_uses_seeded_image():
    client = _pexels(lambda request: httpx.Response(200, json={"photos": []}))
    assert asyncio.run(client.find_image_url("nada")) == seeded_image_url("nada")


def test_pexels_rate_limit_is_classified():
    client = _pexels(lambda request: httpx.Response(429, headers={"Retry-After": "2"}))
    with pytest.raises(RateLimitError) as info:
        asyncio.run(client.find_image_url("playa"))
    assert info.value.retry_after == 2.0


def test_pexels_without_key_never_calls_api():
    def handler(request):
        raise AssertionError("no debería llamar a la API")

    client = _pexels(handler, api_key="")
    assert asyncio.run(client.find_image_url("gato")) == seeded_image_url("gato")


def test_download_returns_bytes():
    payload = jpeg_bytes()
    client = _pexels(lambda request: httpx.Response(200, content=payload))
    assert asyncio.run(client.download("https://img.test/p.jpg")) == payload


def captive_portal(request):
    if request.url.host == "api.pexels.com":
        return httpx.Response(200, text="<html>portal cautivo</html>", headers={"Content-Type": "text/html"})
    return httpx.Response(200, content=jpeg_bytes())


def test_pexels_non_json_body_is_an_api_error():
    with pytest.raises(APIError):
        asyncio.run(_pexels(captive_portal).find_image_url("playa"))


def test_pexels_unexpected_payload_is_an_api_error():
    client = _pexels(lambda request: httpx.Response(200, json=["no", "es", "un", "objeto"]))
    with pytest.raises(APIError):
        asyncio.run(client.find_image_url("playa"))


def test_non_json_search_response_falls_back_to_placeholder(retry_policy, rate_limiter):
    res = resolver(_pexels(captive_portal), FakeNarrator(), retry_policy, rate_limiter)
    result = asyncio.run(res.resolve_image("sun", 1))
    assert result.is_placeholder is True
    assert result.image is not None
