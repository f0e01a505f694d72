"""
Scheduler de Reproducción
Loop cooperativo que mapea el reloj de pared a (escena activa, progreso local)
y llama al compositor en cada tick. Audio y video comparten el mismo `elapsed`.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Callable, List, Mapping, Optional

from PIL import Image

from ..audio.engine import MasterAudioBuffer
from ..domain.models import ResolvedAsset
from ..domain.timeline import ScenePosition, Timeline
from .compositor import FrameCompositor
from .playback import AudioOutput, NullAudioOutput

logger = logging.getLogger(__name__)

FrameListener = Callable[[Image.Image, ScenePosition, float], None]


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"


_TRANSITIONS = {
    PlaybackState.IDLE: {PlaybackState.LOADING},
    PlaybackState.LOADING: {PlaybackState.READY, PlaybackState.IDLE},
    PlaybackState.READY: {PlaybackState.PLAYING, PlaybackState.LOADING, PlaybackState.IDLE},
    PlaybackState.PLAYING: {PlaybackState.PAUSED, PlaybackState.ENDED, PlaybackState.READY, PlaybackState.IDLE},
    PlaybackState.PAUSED: {PlaybackState.PLAYING, PlaybackState.READY, PlaybackState.IDLE},
    PlaybackState.ENDED: {PlaybackState.PLAYING, PlaybackState.READY, PlaybackState.LOADING, PlaybackState.IDLE},
}


class PlaybackScheduler:
    """
    Máquina de estados Idle -> Loading -> Ready -> Playing <-> Paused -> Ended.

    Todo cambio de posición ocurre en tick(). Si hay un event loop corriendo,
    play() lanza una tarea que llama a tick() a `fps`; sin loop, el llamador
    hace los ticks (tests con reloj falso).
    """

    def __init__(
        self,
        compositor: FrameCompositor,
        audio_output: Optional[AudioOutput] = None,
        fps: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.compositor = compositor
        self.audio = audio_output or NullAudioOutput()
        self.fps = fps
        self.clock = clock

        self.state = PlaybackState.IDLE
        self.timeline: Optional[Timeline] = None
        self.assets: Mapping[int, ResolvedAsset] = {}
        self.master_audio: Optional[MasterAudioBuffer] = None

        self.elapsed = 0.0
        self.recording = False
        self.muted = False
        self.last_position: Optional[ScenePosition] = None
        self.frames_rendered = 0

        self._reference: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[FrameListener] = []
        self._end_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    def _transition(self, target: PlaybackState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Transición inválida: {self.state.value} -> {target.value}")
        logger.debug(f"Playback: {self.state.value} -> {target.value}")
        self.state = target

    def _halt(self) -> None:
        """Detiene el loop de ticks y la fuente de audio."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self.audio.stop()

    def add_frame_listener(self, listener: FrameListener) -> None:
        self._listeners.append(listener)

    def remove_frame_listener(self, listener: FrameListener) -> None:
        self._listeners.remove(listener)

    def add_end_listener(self, listener: Callable[[], None]) -> None:
        self._end_listeners.append(listener)

    @property
    def total_duration(self) -> float:
        return self.timeline.total_duration if self.timeline else 0.0

    # ------------------------------------------------------------------
    # Carga
    # ------------------------------------------------------------------

    def begin_loading(self) -> None:
        """Marca el inicio de la resolución de assets (nuevo guión)."""
        if self.state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            self._halt()
            self._transition(PlaybackState.READY)
        self._transition(PlaybackState.LOADING)

    def load(
        self,
        timeline: Timeline,
        assets: Mapping[int, ResolvedAsset],
        master_audio: MasterAudioBuffer,
    ) -> None:
        """Instala un guión resuelto. Reemplazar el guión detiene la reproducción actual."""
        if self.state is not PlaybackState.LOADING:
            self.begin_loading()
        self.timeline = timeline
        self.assets = dict(assets)
        self.master_audio = master_audio
        self.elapsed = 0.0
        self.last_position = None
        self._transition(PlaybackState.READY)

    def unload(self) -> None:
        self._halt()
        if self.state is not PlaybackState.IDLE:
            self._transition(PlaybackState.IDLE)
        self.timeline = None
        self.assets = {}
        self.master_audio = None
        self.elapsed = 0.0

    # ------------------------------------------------------------------
    # Transporte
    # ------------------------------------------------------------------

    def play(self) -> None:
        """Inicia o reanuda. Desde Ended reinicia en t=0."""
        previous = self.state
        self._transition(PlaybackState.PLAYING)
        if previous in (PlaybackState.READY, PlaybackState.ENDED):
            self.elapsed = 0.0
        self._reference = self.clock() - self.elapsed

        if not self.muted and self.master_audio is not None:
            self.audio.start(self.master_audio, offset=self.elapsed)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._task = loop.create_task(self._run())

    def pause(self) -> None:
        self._transition(PlaybackState.PAUSED)
        self.elapsed = min(self.clock() - self._reference, self.total_duration)
        self._halt()

    def stop(self) -> None:
        """Detiene y vuelve a Ready con elapsed = 0."""
        self._halt()
        if self.state is not PlaybackState.READY:
            self._transition(PlaybackState.READY)
        self.elapsed = 0.0

    def _finish(self) -> None:
        self.elapsed = self.total_duration
        self._halt()
        self._transition(PlaybackState.ENDED)
        for listener in list(self._end_listeners):
            listener()

    def tick(self) -> Optional[Image.Image]:
        """
        Un paso del loop: calcula elapsed, termina si llegó al final,
        o compone el frame de la escena activa.
        """
        if self.state is not PlaybackState.PLAYING:
            return None

        elapsed = self.clock() - self._reference
        if elapsed >= self.total_duration:
            self._finish()
            return None

        self.elapsed = elapsed
        position = self.timeline.scene_at(elapsed)
        self.last_position = position
        frame = self.compositor.render_position(position, self.assets.get(position.scene.id), self.recording)
        self.frames_rendered += 1
        for listener in list(self._listeners):
            listener(frame, position, elapsed)
        return frame

    async def _run(self) -> None:
        interval = 1.0 / self.fps
        try:
            while self.state is PlaybackState.PLAYING:
                started = self.clock()
                self.tick()
                if self.state is not PlaybackState.PLAYING:
                    break
                await asyncio.sleep(max(0.0, interval - (self.clock() - started)))
        except Exception:
            logger.exception("Fallo en el loop de reproducción")
            self.audio.stop()
            self.state = PlaybackState.READY
            raise

    async def wait_until_ended(self) -> PlaybackState:
        """Espera a que el loop termine (fin, pausa o stop). Relanza si el loop falló."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return self.state


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
