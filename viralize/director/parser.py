"""
Script Parser
Se encarga de validar y convertir la salida del generador de guiones en objetos de dominio.
"""
import json
import logging
import re
from typing import Any, Dict, Union

from pydantic import ValidationError

from ..domain.models import Script

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class ScriptParser:
    """Validador y parseador de guiones estructurados."""

    def parse(self, raw_input: Union[str, bytes, Dict[str, Any]]) -> Script:
        """
        Convierte un JSON (string o dict) en un objeto Script validado.

        Raises:
            ValueError: si el JSON es inválido o no cumple el esquema.
        """
        if isinstance(raw_input, bytes):
            raw_input = raw_input.decode("utf-8")

        # 1. Normalizar entrada
        if isinstance(raw_input, str):
            data = self._decode_json(raw_input)
        else:
            data = raw_input

        # 2. Validación estricta con Pydantic
        try:
            script = Script.model_validate(data)
        except ValidationError as e:
            logger.error(f"Guión inválido: {e}")
            raise ValueError(f"El guión no cumple el esquema: {e}") from e

        # 3. Validaciones de negocio adicionales
        self._validate_logic(script)
        return script

    def _decode_json(self, text: str) -> Any:
        # Limpiar bloques de código markdown si existen
        match = _FENCE_RE.search(text)
        clean_input = match.group(1) if match else text.strip()
        try:
            return json.loads(clean_input)
        except json.JSONDecodeError as e:
            logger.error(f"Error decodificando JSON del guión: {e}")
            raise ValueError("El generador no devolvió un JSON válido") from e

    def _validate_logic(self, script: Script):
        """Reglas de negocio extra (solo advertencias)."""
        if len(script.scenes) < 3:
            logger.warning("El guión es muy corto (menos de 3 escenas).")

        expected_id = script.scenes[0].id
        for scene in script.scenes:
            if scene.id != expected_id:
                logger.warning(f"IDs de escena no secuenciales. Esperado {expected_id}, encontrado {scene.id}")
            expected_id = scene.id + 1
