"""
Orquestador Central
Coordina los subsistemas: guión -> assets -> pista maestra -> encode.
Los errores fatales salen como PipelineError con la etapa donde ocurrieron.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from rich.console import Console

from .audio.engine import MasterAudioBuffer, MasterAudioSynthesizer
from .config import Settings, load_settings
from .director.parser import ScriptParser
from .domain.errors import PipelineError, Stage
from .domain.models import ResolvedAsset, Script
from .domain.timeline import Timeline
from .encode import EncodeBackend, RenderArtifact, create_backend
from .infrastructure.assets import AssetResolver
from .infrastructure.pexels import PexelsClient
from .tts.edge_tts import EdgeTTSEngine
from .utils.backoff import RateLimiter
from .utils.cache import DiskAssetCache
from .video.compositor import FrameCompositor
from .video.playback import AudioOutput, NullAudioOutput
from .video.scheduler import PlaybackScheduler, PlaybackState

logger = logging.getLogger(__name__)

RawScript = Union[Script, str, bytes, Dict[str, Any]]


@dataclass(frozen=True)
class PreparedSession:
    """Todo lo derivado de un guión para una sesión de render."""
    timeline: Timeline
    assets: Mapping[int, ResolvedAsset]
    master_audio: MasterAudioBuffer


def build_resolver(settings: Settings) -> AssetResolver:
    """Resolutor con los proveedores reales (Pexels/Picsum + Edge-TTS + cache en disco)."""
    return AssetResolver(
        images=PexelsClient(api_key=settings.pexels_api_key),
        narrator=EdgeTTSEngine(voice=settings.tts_voice, rate=settings.tts_rate),
        cache=DiskAssetCache(settings.cache_dir),
        retry_policy=settings.retry.to_policy(),
        rate_limiter=RateLimiter(),
        sample_rate=settings.sample_rate,
        narration_concurrency=settings.narration_concurrency,
    )


class VideoOrchestrator:
    """
    El 'Director de Orquesta'.
    Recibe un guión (objeto o JSON) y coordina su producción.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resolver: Optional[AssetResolver] = None,
        backend: Optional[EncodeBackend] = None,
        console: Optional[Console] = None,
    ):
        self.settings = settings or load_settings()
        self.parser = ScriptParser()
        self.resolver = resolver or build_resolver(self.settings)
        self.synthesizer = MasterAudioSynthesizer(self.settings.sample_rate, self.settings.tail_padding)
        self.backend = backend or create_backend(self.settings)
        self.console = console or Console()

    def _status(self, message: str) -> None:
        self.console.print(f"[dim]   {message}[/dim]")

    def parse(self, raw: RawScript) -> Script:
        if isinstance(raw, Script):
            return raw
        return self.parser.parse(raw)

    async def prepare(self, raw: RawScript) -> PreparedSession:
        """Resuelve assets y compone la pista maestra (sin encode)."""
        script = self.parse(raw)
        timeline = Timeline(script)
        self.console.print(
            f"✅ Guión válido: '{script.title}' ({len(timeline)} escenas, {timeline.total_duration:.1f}s)"
        )

        self.console.print("\n🎨 Step 1: Resolviendo imágenes y narración...")
        try:
            assets = await self.resolver.resolve_all(script, on_status=self._status)
        except PipelineError:
            raise
        except Exception as e:
            raise PipelineError(Stage.ASSET_RESOLUTION, str(e)) from e

        self.console.print("\n🎵 Step 2: Componiendo pista maestra...")
        try:
            master = await self.synthesizer.render_async(timeline, assets)
        except PipelineError:
            raise
        except Exception as e:
            raise PipelineError(Stage.SYNTHESIS, str(e)) from e

        return PreparedSession(timeline, assets, master)

    async def produce(self, raw: RawScript, write_srt: bool = False) -> RenderArtifact:
        """Pipeline completo. Devuelve el artefacto validado o lanza PipelineError."""
        self.console.print("\n🚀 INICIANDO PRODUCCIÓN DE VIDEO")
        session = await self.prepare(raw)

        self.console.print(f"\n🎬 Step 3: Renderizando con backend '{self.backend.name}'...")
        try:
            artifact = await self.backend.render(session.timeline, session.master_audio, session.assets)
        except PipelineError:
            raise
        except Exception as e:
            raise PipelineError(Stage.MUX, str(e)) from e

        if write_srt:
            srt_path = artifact.path.with_suffix(".srt")
            srt_path.write_text(session.timeline.to_srt(), encoding="utf-8")
            self.console.print(f"📝 Subtítulos: {srt_path}")

        self.console.print(f"\n✅ Producción finalizada: {artifact.path}")
        return artifact

    async def preview(
        self,
        raw: RawScript,
        audio_output: Optional[AudioOutput] = None,
        frames_dir: Optional[Path] = None,
    ) -> PlaybackState:
        """
        Reproduce el guión en tiempo real a resolución de preview.
        Con `frames_dir` guarda el primer frame de cada escena mostrada.
        """
        s = self.settings
        compositor = FrameCompositor(
            s.preview_width, s.preview_height, zoom_rate=s.zoom_rate, caption_max_chars=s.caption_max_chars
        )
        scheduler = PlaybackScheduler(compositor, audio_output or NullAudioOutput(), fps=s.fps)
        scheduler.begin_loading()
        session = await self.prepare(raw)
        scheduler.load(session.timeline, session.assets, session.master_audio)

        if frames_dir is not None:
            frames_dir.mkdir(parents=True, exist_ok=True)
            seen = set()

            def save_first_frame(frame, position, elapsed):
                if position.index not in seen:
                    seen.add(position.index)
                    frame.save(frames_dir / f"preview_{position.index:03d}.png")

            scheduler.add_frame_listener(save_first_frame)

        self.console.print(f"\n▶️  Preview ({session.timeline.total_duration:.1f}s)...")
        try:
            scheduler.play()
            state = await scheduler.wait_until_ended()
        finally:
            scheduler.unload()
        self.console.print(f"⏹️  Preview terminado ({scheduler.frames_rendered} frames)")
        return state

    async def close(self) -> None:
        await self.resolver.images.close()
        cache_close = getattr(self.resolver.cache, "close", None)
        if cache_close is not None:
            cache_close()
