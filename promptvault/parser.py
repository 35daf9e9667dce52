"""
ComfyUI Workflow Parser
=======================

Extracts prompts and generation metadata from ComfyUI workflow documents.

Usage:
    result = validate_workflow_json(document)
    if result.valid:
        graph = normalize(document)
        prompts = extract_prompts(graph)
        metadata = extract_metadata(graph)

``extract_prompts`` and ``extract_metadata`` also accept the raw document and
normalize it themselves.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Union

from .graph import CanonicalGraph, CanonicalNode, EdgeRef, WorkflowFormat, detect_format, is_node_id, normalize
from .node_types import DEFAULT_NODE_TYPES, NodeTypeConfig

logger = logging.getLogger(__name__)

POSITIVE = 'positive'
NEGATIVE = 'negative'
UNKNOWN = 'unknown'

# Input keys searched for prompt text, in priority order
PROMPT_TEXT_KEYS = ('text', 'prompt', 'positive', 'negative')


@dataclass(frozen=True)
class PromptRecord:
    node_id: str
    node_type: str
    prompt_type: str
    prompt_text: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class MetadataSummary:
    """Generation settings aggregated over the whole graph."""
    models: List[Dict[str, Any]] = field(default_factory=list)
    samplers: List[Dict[str, Any]] = field(default_factory=list)
    dimensions: Optional[Dict[str, Any]] = None
    seed: Any = None
    steps: Any = None
    cfg: Any = None
    scheduler: Any = None
    vaes: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ValidationResult(NamedTuple):
    valid: bool
    error: Optional[str] = None


class WorkflowParser:
    """Prompt/metadata extractor bound to one set of recognized node types."""

    def __init__(self, node_types: NodeTypeConfig = DEFAULT_NODE_TYPES):
        self.node_types = node_types

    def normalize(self, document: Any) -> CanonicalGraph:
        return normalize(document, self.node_types)

    def _graph(self, workflow: Union[CanonicalGraph, Dict[str, Any]]) -> CanonicalGraph:
        if isinstance(workflow, CanonicalGraph):
            return workflow
        return self.normalize(workflow)

    def validate(self, document: Any) -> ValidationResult:
        """Check a raw document before it is normalized or stored."""
        if not isinstance(document, dict):
            return ValidationResult(False, 'Invalid JSON: not an object')

        if not document:
            return ValidationResult(False, 'Invalid JSON: empty workflow')

        workflow_format = detect_format(document)

        if workflow_format is WorkflowFormat.API:
            for node_id, node_data in document.items():
                if not is_node_id(node_id):
                    continue
                if not isinstance(node_data, dict) or not _has_type(node_data, 'class_type'):
                    return ValidationResult(False, f'Invalid node {node_id}: missing class_type')
            return ValidationResult(True)

        if workflow_format is WorkflowFormat.UI and document['nodes']:
            for index, node in enumerate(document['nodes']):
                if not isinstance(node, dict) or not _has_type(node, 'type'):
                    node_id = node.get('id', index) if isinstance(node, dict) else index
                    return ValidationResult(False, f'Invalid node {node_id}: missing type')
            return ValidationResult(True)

        return ValidationResult(False, 'Invalid JSON: no nodes found')

    def extract_prompts(self, workflow: Union[CanonicalGraph, Dict[str, Any]]) -> List[PromptRecord]:
        """Pull prompt text out of every prompt-bearing node, in graph order."""
        prompts = []

        try:
            graph = self._graph(workflow)
            for node_id, node in graph.items():
                if node.class_type not in self.node_types.prompt_types:
                    continue

                prompt_text = self._prompt_text(node)
                if prompt_text is None:
                    continue

                prompts.append(PromptRecord(
                    node_id=node_id,
                    node_type=node.class_type,
                    prompt_type=self.classify_prompt(node_id, node, graph),
                    prompt_text=prompt_text.strip(),
                ))
        except Exception as e:
            logger.error(f"Error extracting prompts: {e}", exc_info=True)
            return []

        return prompts

    @staticmethod
    def _prompt_text(node: CanonicalNode) -> Optional[str]:
        for key in PROMPT_TEXT_KEYS:
            value = node.inputs.get(key)
            # Linked inputs carry no literal text
            if value and not isinstance(value, EdgeRef):
                return value if isinstance(value, str) else str(value)
        return None

    def classify_prompt(self, node_id: str, node: CanonicalNode, graph: CanonicalGraph) -> str:
        """Decide whether a prompt node is positive or negative conditioning.

        Checks, in order: the node title, the node's own input keys, then the
        input name of any sampler that consumes the node's output.
        """
        title = str(node.title or '').lower()
        if NEGATIVE in title:
            return NEGATIVE
        if POSITIVE in title:
            return POSITIVE

        if NEGATIVE in node.inputs:
            return NEGATIVE
        if POSITIVE in node.inputs:
            return POSITIVE

        for conn in graph.find_consumers(node_id):
            target = graph.get(conn["target_node_id"])
            if target is None or target.class_type not in self.node_types.sampler_types:
                continue
            if conn["target_input"] == NEGATIVE:
                return NEGATIVE
            if conn["target_input"] == POSITIVE:
                return POSITIVE

        return UNKNOWN

    def extract_metadata(self, workflow: Union[CanonicalGraph, Dict[str, Any]]) -> MetadataSummary:
        """Aggregate model, sampler, size and VAE settings.

        Scalar sampler settings and dimensions are last-writer-wins in graph
        order; models, samplers and VAEs accumulate.
        """
        metadata = MetadataSummary()
        types = self.node_types

        try:
            graph = self._graph(workflow)
            for node_id, node in graph.items():
                class_type = node.class_type
                inputs = node.inputs

                if class_type in types.checkpoint_types and _literal(inputs.get('ckpt_name')):
                    metadata.models.append({
                        'type': 'checkpoint',
                        'name': inputs['ckpt_name'],
                        'nodeId': node_id,
                    })

                if class_type in types.sampler_types:
                    metadata.samplers.append({
                        'sampler_name': _literal_or_none(inputs.get('sampler_name')),
                        'scheduler': _literal_or_none(inputs.get('scheduler')),
                        'nodeId': node_id,
                    })
                    for key in ('seed', 'steps', 'cfg', 'scheduler'):
                        if key in inputs and not isinstance(inputs[key], EdgeRef):
                            setattr(metadata, key, inputs[key])

                if class_type in types.latent_types:
                    width, height = inputs.get('width'), inputs.get('height')
                    if _literal(width) and _literal(height):
                        metadata.dimensions = {'width': width, 'height': height, 'nodeId': node_id}

                if class_type in types.vae_types and _literal(inputs.get('vae_name')):
                    metadata.vaes.append({'name': inputs['vae_name'], 'nodeId': node_id})
        except Exception as e:
            logger.error(f"Error extracting metadata: {e}", exc_info=True)
            return MetadataSummary()

        return metadata


def _has_type(node: Dict[str, Any], key: str) -> bool:
    """Class types are non-empty strings."""
    value = node.get(key)
    return isinstance(value, str) and bool(value)


def _literal(value: Any) -> bool:
    """Truthy and not a link to another node."""
    return bool(value) and not isinstance(value, EdgeRef)


def _literal_or_none(value: Any) -> Any:
    return None if isinstance(value, EdgeRef) else value


default_parser = WorkflowParser()


def validate_workflow_json(document: Any) -> ValidationResult:
    return default_parser.validate(document)


def extract_prompts(workflow) -> List[PromptRecord]:
    return default_parser.extract_prompts(workflow)


def extract_metadata(workflow) -> MetadataSummary:
    return default_parser.extract_metadata(workflow)


def classify_prompt(node_id: str, node: CanonicalNode, graph: CanonicalGraph) -> str:
    return default_parser.classify_prompt(node_id, node, graph)


def generate_workflow_name(workflow, today: Optional[date] = None) -> str:
    """Derive a display name from the first checkpoint, e.g. ``sd xl base 1.0 - 2024-05-01``."""
    timestamp = (today or datetime.now(timezone.utc).date()).isoformat()
    metadata = workflow if isinstance(workflow, MetadataSummary) else extract_metadata(workflow)

    if metadata.models:
        model_name = str(metadata.models[0]['name'])
        model_name = re.sub(r'\.[^/.]+$', '', model_name)
        model_name = re.sub(r'[_-]', ' ', model_name)
        return f"{model_name} - {timestamp}"

    return f"Workflow - {timestamp}"
