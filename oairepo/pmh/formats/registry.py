from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from oairepo.pmh.formats.base import MetadataFormatDescriptor, RenderContext, Renderer
from oairepo.pmh.formats.mods import MODS
from oairepo.pmh.formats.oai_dc import OAI_DC
from oairepo.pmh.formats.oai_dcterms import OAI_DCTERMS
from oairepo.pmh.formats.simple_xml import SIMPLE_XML


class MetadataFormatRegistry:
    """Registered formats, and the subset enabled by the settings allow-list."""

    def __init__(self, descriptors: Iterable[MetadataFormatDescriptor], enabled: Optional[Sequence[str]] = None):
        self._descriptors: Dict[str, MetadataFormatDescriptor] = {d.prefix: d for d in descriptors}
        self._enabled = set(self._descriptors if enabled is None else enabled)

    def register(self, descriptor: MetadataFormatDescriptor) -> None:
        self._descriptors[descriptor.prefix] = descriptor

    def is_registered(self, prefix: str) -> bool:
        return prefix in self._descriptors

    def is_available(self, prefix: str) -> bool:
        return prefix in self._descriptors and prefix in self._enabled

    def available(self) -> List[MetadataFormatDescriptor]:
        return [d for prefix, d in self._descriptors.items() if prefix in self._enabled]

    def renderer(self, prefix: str, context: RenderContext) -> Renderer:
        if not self.is_available(prefix):
            raise KeyError(prefix)
        return Renderer(self._descriptors[prefix], context)


BUILTIN_FORMATS = (OAI_DC, OAI_DCTERMS, MODS, SIMPLE_XML)


def default_formats(enabled: Optional[Sequence[str]] = None) -> MetadataFormatRegistry:
    return MetadataFormatRegistry(BUILTIN_FORMATS, enabled)
