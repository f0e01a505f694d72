"""Infraestructura: proveedores externos y resolutor de assets."""

from .pexels import PexelsClient, placeholder_url, seeded_image_url
from .assets import AssetResolver, ResolvedImage, decode_image

__all__ = [
    "PexelsClient", "placeholder_url", "seeded_image_url",
    "AssetResolver", "ResolvedImage", "decode_image",
]
