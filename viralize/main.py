"""
Entrada principal Viralize
CLI: render, preview, serve y demo.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import load_settings
from .domain.errors import PipelineError

console = Console()

DEMO_SCRIPT = """
```json
{
    "title": "La Revolución del Video Vertical",
    "tone": "energético",
    "seoKeywords": ["video vertical", "shorts"],
    "hashtags": ["#shorts", "#viral"],
    "scenes": [
        {
            "id": 1,
            "duration": 4,
            "narration": "Bienvenido a la nueva era de la creación de video.",
            "overlayText": "NUEVA ERA",
            "imageKeyword": "futuristic technology"
        },
        {
            "id": 2,
            "duration": 4,
            "narration": "Ya no se trata de videos estáticos y aburridos.",
            "overlayText": "ADIÓS-ABURRIMIENTO",
            "imageKeyword": "bored office"
        },
        {
            "id": 3,
            "duration": 3,
            "narration": "",
            "overlayText": "SÍGUENOS",
            "imageKeyword": "colorful explosion",
            "isCta": true
        }
    ]
}
```
"""


def _read_script(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _print_artifact(artifact) -> None:
    table = Table(title="Video generado")
    table.add_column("Campo", style="cyan")
    table.add_column("Valor", style="green")
    table.add_row("Archivo", str(artifact.path))
    table.add_row("Backend", artifact.backend)
    table.add_row("Tamaño", f"{artifact.size_bytes / 1024:.0f} KB")
    table.add_row("Duración", f"{artifact.duration:.2f}s")
    table.add_row("Frames", str(artifact.frames))
    console.print(table)


async def _render(raw: str, settings, write_srt: bool) -> None:
    from .orchestrator import VideoOrchestrator

    orchestrator = VideoOrchestrator(settings, console=console)
    try:
        artifact = await orchestrator.produce(raw, write_srt=write_srt)
    finally:
        await orchestrator.close()
    _print_artifact(artifact)


async def _preview(raw: str, settings, mute: bool, frames_dir) -> None:
    from .orchestrator import VideoOrchestrator
    from .video.playback import FfplayAudioOutput, NullAudioOutput

    output = NullAudioOutput() if mute else FfplayAudioOutput(settings.ffplay_binary)
    orchestrator = VideoOrchestrator(settings, console=console)
    try:
        await orchestrator.preview(raw, audio_output=output, frames_dir=frames_dir)
    finally:
        output.close()
        await orchestrator.close()


def _serve(settings, host: str, port: int) -> None:
    import uvicorn

    from .server.app import create_app

    console.print(Panel(f"Servidor de render en http://{host}:{port}", title="Viralize"))
    uvicorn.run(create_app(settings), host=host, port=port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="viralize", description="Motor de render de videos verticales")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default="config/config.yaml", help="Archivo YAML de configuración")
    parser.add_argument("-v", "--verbose", action="store_true", help="Logging detallado (DEBUG)")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Renderiza un guión a mp4")
    render.add_argument("script", help="Archivo JSON del guión ('-' para stdin)")
    render.add_argument("--backend", choices=["local", "remote", "capture"], help="Backend de encode")
    render.add_argument("--output-dir", help="Directorio de salida")
    render.add_argument("--srt", action="store_true", help="Genera también subtítulos .srt")

    preview = sub.add_parser("preview", help="Reproduce el guión en tiempo real")
    preview.add_argument("script", help="Archivo JSON del guión ('-' para stdin)")
    preview.add_argument("--mute", action="store_true", help="Sin audio")
    preview.add_argument("--frames-dir", type=Path, help="Guarda el primer frame de cada escena")

    serve = sub.add_parser("serve", help="Inicia el servidor de render remoto")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3000)

    demo = sub.add_parser("demo", help="Renderiza el guión de demostración")
    demo.add_argument("--backend", choices=["local", "remote", "capture"], help="Backend de encode")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(
            args.config,
            backend=getattr(args, "backend", None),
            output_dir=getattr(args, "output_dir", None),
        )
        console.print(Panel(f"🎬 Viralize {__version__} - backend: {settings.backend}", title="Viralize"))

        if args.command == "render":
            asyncio.run(_render(_read_script(args.script), settings, args.srt))
        elif args.command == "preview":
            asyncio.run(_preview(_read_script(args.script), settings, args.mute, args.frames_dir))
        elif args.command == "serve":
            _serve(settings, args.host, args.port)
        elif args.command == "demo":
            asyncio.run(_render(DEMO_SCRIPT, settings, write_srt=True))
    except PipelineError as e:
        console.print(f"[red]❌ Falló la etapa '{e.stage.value}': {e.message}[/red]")
        diagnostic = getattr(e, "diagnostic", "")
        if diagnostic:
            console.print(Panel(diagnostic, title="Diagnóstico", style="red"))
        return 1
    except ValueError as e:
        console.print(f"[red]❌ Entrada inválida: {e}[/red]")
        return 2
    except FileNotFoundError as e:
        console.print(f"[red]❌ No encontrado: {e}[/red]")
        return 2
    except KeyboardInterrupt:
        console.print("[yellow]Interrumpido[/yellow]")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
