from oairepo.pmh.formats.base import MetadataFormatDescriptor, RenderContext, Renderer
from oairepo.pmh.formats.registry import BUILTIN_FORMATS, MetadataFormatRegistry, default_formats

__all__ = [
    "BUILTIN_FORMATS",
    "MetadataFormatDescriptor",
    "MetadataFormatRegistry",
    "RenderContext",
    "Renderer",
    "default_formats",
]
