import asyncio

import httpx
import pytest
from PIL import Image

from viralize.audio.engine import MasterAudioSynthesizer
from viralize.domain.errors import Stage, TranscoderError
from viralize.domain.models import ResolvedAsset
from viralize.domain.timeline import Timeline
from viralize.encode.local import LocalTranscoder
from viralize.encode.remote import RemoteBackend
from viralize.server.app import create_app

from conftest import make_script


@pytest.fixture
def remote_settings(small_settings, tmp_path):
    return small_settings.model_copy(
        update={"render_server_url": "http://render", "backend": "remote"}
    )


@pytest.fixture
def timeline():
    return Timeline(make_script(
        {"id": 1, "duration": 1.0, "overlayText": "REMOTO"},
        {"id": 2, "duration": 1.0, "narration": "Segunda escena"},
        title="Video Remoto",
    ))


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://render")


def test_remote_render_round_trip(remote_settings, tmp_path, timeline):
    server_settings = remote_settings.model_copy(update={"output_dir": str(tmp_path / "server")})
    app = create_app(server_settings)
    assets = {1: ResolvedAsset(1, Image.new("RGB", (60, 90), (200, 200, 0)))}
    master = MasterAudioSynthesizer(remote_settings.sample_rate).render(timeline, assets)

    async def run():
        async with _client(app) as client:
            return await RemoteBackend(remote_settings, client=client).render(timeline, master, assets)

    artifact = asyncio.run(run())
    assert artifact.backend == "remote"
    assert artifact.path.name == "video_remoto.mp4"
    assert artifact.path.is_file()
    assert abs(artifact.frames - 20) <= 1
    assert len(list((tmp_path / "server" / "videos").glob("video_*.mp4"))) == 1


def test_remote_failure_returns_transcoder_diagnostic(remote_settings, tmp_path, timeline):
    server_settings = remote_settings.model_copy(update={"output_dir": str(tmp_path / "server")})
    app = create_app(server_settings, transcoder=LocalTranscoder(str(tmp_path / "no-ffmpeg")))
    master = MasterAudioSynthesizer(remote_settings.sample_rate).render(timeline, {})

    async def run():
        async with _client(app) as client:
            return await RemoteBackend(remote_settings, client=client).render(timeline, master, {})

    with pytest.raises(TranscoderError) as info:
        asyncio.run(run())
    assert info.value.stage is Stage.MUX
    assert "no-ffmpeg" in info.value.diagnostic


def test_download_url_keeps_the_server_path_prefix(remote_settings):
    backend = RemoteBackend(remote_settings.model_copy(update={"render_server_url": "http://host/render/"}))
    assert str(backend.download_url("/videos/video_x.mp4")) == "http://host/render/videos/video_x.mp4"
    assert str(backend.download_url("videos/video_x.mp4")) == "http://host/render/videos/video_x.mp4"
    assert str(backend.download_url("https://cdn.test/v.mp4")) == "https://cdn.test/v.mp4"
