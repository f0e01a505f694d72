"""
Backend remoto: envía stills + WAV + manifest del grafo a un servidor de render
(viralize serve) y descarga el mp4 resultante.
"""
import asyncio
import json
import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Mapping, Optional

import httpx

from ..audio.engine import MasterAudioBuffer
from ..config import Settings
from ..domain.errors import TranscoderError
from ..domain.models import ResolvedAsset
from ..domain.timeline import Timeline
from .base import EncodeBackend, RenderArtifact, check_preconditions, materialize_stills, validate_artifact
from .graph import build_filter_graph

logger = logging.getLogger(__name__)


class RemoteBackend(EncodeBackend):
    """Cliente del endpoint POST /api/render-job."""

    name = "remote"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        super().__init__(settings)
        self.base_url = settings.render_server_url.rstrip("/")
        self._client = client

    def download_url(self, url: str) -> httpx.URL:
        """URL de descarga: las relativas cuelgan del prefijo del servidor configurado."""
        parsed = httpx.URL(url)
        if parsed.is_absolute_url:
            return parsed
        return httpx.URL(f"{self.base_url}/{url.lstrip('/')}")

    async def _post_job(self, client: httpx.AsyncClient, job_id: str, manifest: dict, stills, audio: Path) -> str:
        files = [
            (path.name, (path.name, path.read_bytes(), "image/jpeg")) for path in stills
        ]
        files.append(("audio.wav", ("audio.wav", audio.read_bytes(), "audio/wav")))
        data = {"jobId": job_id, "manifest": json.dumps(manifest)}

        try:
            response = await client.post(
                f"{self.base_url}/api/render-job",
                data=data,
                files=files,
                timeout=self.settings.remote_timeout,
            )
        except httpx.HTTPError as e:
            raise TranscoderError(f"Servidor de render inaccesible ({self.base_url}): {e}") from e

        try:
            payload = response.json()
        except ValueError:
            raise TranscoderError(
                f"Respuesta inválida del servidor (HTTP {response.status_code})",
                diagnostic=response.text,
            )

        if not payload.get("success"):
            raise TranscoderError(
                f"El servidor de render falló (HTTP {response.status_code})",
                diagnostic=payload.get("error") or "",
            )
        return payload["url"]

    async def _download(self, client: httpx.AsyncClient, url: httpx.URL, target: Path) -> None:
        try:
            async with client.stream("GET", url, timeout=self.settings.remote_timeout) as response:
                if response.status_code != 200:
                    raise TranscoderError(f"No se pudo descargar el video (HTTP {response.status_code})")
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise TranscoderError(f"Descarga del video interrumpida: {e}") from e

    async def render(
        self,
        timeline: Timeline,
        master_audio: MasterAudioBuffer,
        assets: Mapping[int, ResolvedAsset],
    ) -> RenderArtifact:
        s = self.settings
        graph = build_filter_graph(timeline, s.width, s.height, s.fps)
        job_id = uuid.uuid4().hex
        final = self.output_path(timeline)
        client = self._client or httpx.AsyncClient()

        try:
            with tempfile.TemporaryDirectory(prefix="viralize_remote_") as tmp:
                sandbox = Path(tmp)
                stills = await asyncio.to_thread(
                    materialize_stills, timeline, assets, self.export_compositor(), sandbox
                )
                audio = sandbox / "audio.wav"
                audio.write_bytes(master_audio.to_wav())
                check_preconditions(stills, len(graph.segments), audio)

                logger.info(f"📤 Enviando job {job_id} a {self.base_url}")
                url = await self._post_job(client, job_id, graph.to_manifest(), stills, audio)

                download = sandbox / "download.mp4"
                await self._download(client, self.download_url(url), download)
                size, frames, seconds = validate_artifact(download, s.min_artifact_bytes)
                shutil.move(str(download), str(final))
        finally:
            if self._client is None:
                await client.aclose()

        logger.info(f"✅ Video remoto listo: {final} ({size / 1024:.0f} KB)")
        return RenderArtifact(final, self.name, size, seconds, frames)
