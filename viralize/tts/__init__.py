"""Módulo TTS: síntesis de narración por escena."""

from .edge_tts import EdgeTTSEngine, NarrationProvider, clean_text_for_tts

__all__ = ["EdgeTTSEngine", "NarrationProvider", "clean_text_for_tts"]
