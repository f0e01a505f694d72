"""
Grafo de filtros / concatenación.
Modelo tipado (segmentos de imagen, video concatenado, pista de audio) que cada
backend baja a la sintaxis de su transcoder. Se construye una sola vez.
"""
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..domain.timeline import Timeline

VIDEO_CODEC = ["-c:v", "libx264", "-profile:v", "main", "-pix_fmt", "yuv420p", "-preset", "fast"]
AUDIO_CODEC = ["-c:a", "aac", "-b:a", "192k", "-ac", "2"]


@dataclass(frozen=True)
class ImageSegment:
    """Una imagen fija sostenida `frames` cuadros, escalada y recortada al destino."""
    input_index: int
    frames: int
    fps: int

    @property
    def duration(self) -> float:
        return self.frames / self.fps


@dataclass(frozen=True)
class ConcatVideo:
    """Concatena los segmentos en orden de escena."""
    inputs: Tuple[int, ...]


@dataclass(frozen=True)
class AudioTrack:
    """La pista maestra, mapeada junto al video concatenado."""
    input_index: int


@dataclass(frozen=True)
class FilterGraph:
    width: int
    height: int
    fps: int
    segments: Tuple[ImageSegment, ...]
    concat: ConcatVideo
    audio: AudioTrack

    @property
    def frame_count(self) -> int:
        return sum(s.frames for s in self.segments)

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps

    def still_names(self) -> List[str]:
        return [f"frame_{s.input_index}.jpg" for s in self.segments]

    def to_manifest(self) -> dict:
        """Representación JSON-safe (se envía al proceso de render remoto)."""
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "segments": [{"input": s.input_index, "frames": s.frames} for s in self.segments],
            "concat": list(self.concat.inputs),
            "audio": self.audio.input_index,
        }

    @classmethod
    def from_manifest(cls, data: dict) -> "FilterGraph":
        """
        Reconstruye el grafo desde un manifest.

        Raises:
            ValueError: si el manifest está incompleto o es inconsistente
        """
        try:
            fps = int(data["fps"])
            width, height = int(data["width"]), int(data["height"])
            segments = tuple(
                ImageSegment(int(s["input"]), int(s["frames"]), fps) for s in data["segments"]
            )
            concat = ConcatVideo(tuple(int(i) for i in data["concat"]))
            audio = AudioTrack(int(data["audio"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Manifest inválido: {e}") from e

        if fps <= 0 or width <= 0 or height <= 0:
            raise ValueError("Manifest inválido: dimensiones o fps no positivos")
        if not segments:
            raise ValueError("Manifest inválido: sin segmentos")
        if any(s.frames <= 0 for s in segments):
            raise ValueError("Manifest inválido: segmento sin frames")
        expected = tuple(range(len(segments)))
        if tuple(s.input_index for s in segments) != expected or concat.inputs != expected:
            raise ValueError("Manifest inválido: índices de entrada fuera de orden")
        if audio.input_index != len(segments):
            raise ValueError("Manifest inválido: la pista de audio debe ser la última entrada")
        return cls(width, height, fps, segments, concat, audio)


def build_filter_graph(timeline: Timeline, width: int, height: int, fps: int) -> FilterGraph:
    """Un segmento por escena con frames de límites redondeados acumulados."""
    frames = timeline.frame_boundaries(fps)
    segments = tuple(ImageSegment(i, n, fps) for i, n in enumerate(frames))
    return FilterGraph(
        width=width,
        height=height,
        fps=fps,
        segments=segments,
        concat=ConcatVideo(tuple(s.input_index for s in segments)),
        audio=AudioTrack(len(segments)),
    )


def filter_complex(graph: FilterGraph) -> str:
    """Expresión -filter_complex: escala+recorte por segmento y concat."""
    w, h = graph.width, graph.height
    chains = [
        f"[{s.input_index}:v]scale={w}:{h}:force_original_aspect_ratio=increase,"
        f"crop={w}:{h},setsar=1,fps={graph.fps}[v{s.input_index}]"
        for s in graph.segments
    ]
    labels = "".join(f"[v{i}]" for i in graph.concat.inputs)
    chains.append(f"{labels}concat=n={len(graph.concat.inputs)}:v=1:a=0[outv]")
    return ";".join(chains)


def lower_to_ffmpeg(
    graph: FilterGraph,
    stills: Sequence[str],
    audio: str,
    output: str,
    ffmpeg: str = "ffmpeg",
) -> List[str]:
    """
    Baja el grafo a argumentos de línea de comandos de FFmpeg.

    Args:
        stills: Ruta de la imagen de cada segmento, en orden
        audio: Ruta del WAV maestro
        output: Archivo mp4 de salida
    """
    if len(stills) != len(graph.segments):
        raise ValueError(f"Se esperaban {len(graph.segments)} imágenes, llegaron {len(stills)}")

    cmd = [ffmpeg, "-y", "-hide_banner", "-loglevel", "error"]
    for segment, still in zip(graph.segments, stills):
        cmd += [
            "-loop", "1",
            "-framerate", str(graph.fps),
            "-t", f"{segment.duration:.6f}",
            "-i", str(still),
        ]
    cmd += ["-i", str(audio)]

    cmd += [
        "-filter_complex", filter_complex(graph),
        "-map", "[outv]",
        "-map", f"{graph.audio.input_index}:a",
        *VIDEO_CODEC,
        "-r", str(graph.fps),
        *AUDIO_CODEC,
        # El audio trae relleno al final; se corta al más corto
        "-shortest",
        "-movflags", "+faststart",
        str(output),
    ]
    return cmd
