"""
Viralize - motor de composición y render de videos verticales.
Convierte un guión por escenas en un video sincronizado con narración.
"""

__version__ = "0.3.0"
