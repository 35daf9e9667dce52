"""
ComfyUI Node Type Configuration
===============================

Recognized node types and widget layouts used by the workflow parser.

All tables here are read-only. A custom ``NodeTypeConfig`` can be passed to
``WorkflowParser`` to recognize additional node types without touching the
parsing code.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Tuple


@dataclass(frozen=True)
class WidgetLayout:
    """Position -> input name mapping for a UI-format node's ``widgets_values``."""
    fields: Tuple[str, ...]
    min_length: int = 1

    def decode(self, widget_values) -> dict:
        """Map positional widget values onto named inputs.

        Returns an empty dict when the array is shorter than ``min_length``;
        a layout is applied whole or not at all.
        """
        if not isinstance(widget_values, list) or len(widget_values) < self.min_length:
            return {}
        return {name: widget_values[i] for i, name in enumerate(self.fields) if i < len(widget_values)}


_SAMPLER_LAYOUT = WidgetLayout(("seed", "steps", "cfg", "sampler_name", "scheduler"), min_length=5)
_CHECKPOINT_LAYOUT = WidgetLayout(("ckpt_name",))

DEFAULT_WIDGET_LAYOUTS: Mapping[str, WidgetLayout] = MappingProxyType({
    'CLIPTextEncode': WidgetLayout(("text",)),
    'CheckpointLoaderSimple': _CHECKPOINT_LAYOUT,
    'CheckpointLoader': _CHECKPOINT_LAYOUT,
    'KSampler': _SAMPLER_LAYOUT,
    'KSamplerAdvanced': _SAMPLER_LAYOUT,
    'EmptyLatentImage': WidgetLayout(("width", "height"), min_length=2),
    'VAELoader': WidgetLayout(("vae_name",)),
})


@dataclass(frozen=True)
class NodeTypeConfig:
    """Closed sets of class types, one per extractor."""
    prompt_types: FrozenSet[str] = frozenset({
        'CLIPTextEncode',
        'CLIPTextEncodeSDXL',
        'CLIPTextEncodeSDXLRefiner',
        'ConditioningCombine',
        'ConditioningConcat',
        'ConditioningAverage',
        'ConditioningSetArea',
    })
    checkpoint_types: FrozenSet[str] = frozenset({'CheckpointLoaderSimple', 'CheckpointLoader'})
    sampler_types: FrozenSet[str] = frozenset({'KSampler', 'KSamplerAdvanced'})
    latent_types: FrozenSet[str] = frozenset({'EmptyLatentImage', 'LatentUpscale'})
    vae_types: FrozenSet[str] = frozenset({'VAELoader', 'VAEDecode', 'VAEEncode'})
    widget_layouts: Mapping[str, WidgetLayout] = field(default_factory=lambda: DEFAULT_WIDGET_LAYOUTS)

    def extend(self, **extra) -> "NodeTypeConfig":
        """Return a copy with extra class types added to the named sets.

        Example: ``config.extend(prompt_types={"MyTextNode"})``
        """
        changes = {}
        for name, values in extra.items():
            if name == 'widget_layouts':
                changes[name] = MappingProxyType({**self.widget_layouts, **values})
            else:
                changes[name] = frozenset(getattr(self, name)) | frozenset(values)
        return NodeTypeConfig(**{**self.__dict__, **changes})


DEFAULT_NODE_TYPES = NodeTypeConfig()
