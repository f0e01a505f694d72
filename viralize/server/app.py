"""
Servidor de render remoto.
Recibe stills + WAV + manifest, reconstruye el grafo y ejecuta el mismo
transcoder que el backend local. Sirve los videos terminados en /videos.
"""
import asyncio
import json
import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from starlette.datastructures import UploadFile

from .. import __version__
from ..config import Settings, load_settings
from ..domain.errors import PipelineError
from ..encode.base import validate_artifact
from ..encode.graph import FilterGraph
from ..encode.local import AUDIO_NAME, LocalTranscoder

logger = logging.getLogger(__name__)

_VIDEO_NAME = re.compile(r"^video_[A-Za-z0-9_-]+\.mp4$")


def safe_job_id(raw: Optional[str]) -> str:
    job_id = re.sub(r"[^A-Za-z0-9_-]", "", raw or "")[:64]
    if not job_id:
        raise ValueError("jobId requerido")
    return job_id


def _fail(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_app(settings: Optional[Settings] = None, transcoder: Optional[LocalTranscoder] = None) -> FastAPI:
    settings = settings or load_settings()
    videos_dir = Path(settings.output_dir) / "videos"
    videos_dir.mkdir(parents=True, exist_ok=True)
    transcoder = transcoder or LocalTranscoder(settings.ffmpeg_binary)

    app = FastAPI(title="Viralize Render Server", version=__version__)

    @app.get("/health")
    def health():
        return {"ok": True, "ffmpeg": transcoder.ffmpeg}

    @app.post("/api/render-job")
    async def render_job(request: Request):
        form = await request.form()
        try:
            job_id = safe_job_id(form.get("jobId"))
            graph = FilterGraph.from_manifest(json.loads(form.get("manifest") or ""))
        except ValueError as e:
            return _fail(str(e), 400)

        with tempfile.TemporaryDirectory(prefix=f"viralize_job_{job_id}_") as tmp:
            sandbox = Path(tmp)
            for name in graph.still_names() + [AUDIO_NAME]:
                upload = form.get(name)
                if not isinstance(upload, UploadFile):
                    return _fail(f"Falta el archivo {name}", 400)
                content = await upload.read()
                if not content:
                    return _fail(f"Archivo vacío: {name}", 400)
                (sandbox / name).write_bytes(content)

            logger.info(f"🎬 Job {job_id}: {len(graph.segments)} escenas, {graph.duration:.2f}s")
            try:
                produced = await asyncio.to_thread(transcoder.run_in_sandbox, graph, sandbox)
                validate_artifact(produced, settings.min_artifact_bytes)
            except PipelineError as e:
                logger.error(f"❌ Job {job_id} falló: {e}")
                return _fail(str(e), 500)

            target = videos_dir / f"video_{job_id}.mp4"
            shutil.move(str(produced), str(target))

        return {"success": True, "url": f"/videos/{target.name}"}

    @app.get("/videos/{name}")
    def get_video(name: str):
        path = videos_dir / name
        if not _VIDEO_NAME.match(name) or not path.is_file():
            raise HTTPException(404, "video no encontrado")
        return FileResponse(path, media_type="video/mp4")

    return app
