"""Módulo director: interpretación de guiones."""

from .parser import ScriptParser

__all__ = ["ScriptParser"]
