"""
Comfy Prompt Vault
==================

Parsing of ComfyUI workflow documents into prompts and generation metadata.

This package provides:
- Normalization of API and UI workflow exports into one canonical graph
- Prompt extraction with positive/negative classification
- Metadata extraction (checkpoints, samplers, dimensions, VAEs)
- Validation and display-name generation for uploaded workflows
"""

from .graph import CanonicalGraph, CanonicalNode, EdgeRef, WorkflowFormat, decode_inputs, normalize
from .node_types import DEFAULT_NODE_TYPES, NodeTypeConfig, WidgetLayout
from .parser import (
    MetadataSummary, PromptRecord, ValidationResult, WorkflowParser, default_parser,
    classify_prompt, extract_metadata, extract_prompts,
    generate_workflow_name, validate_workflow_json,
)

__version__ = "1.0.0"

__all__ = [
    # Graph
    'CanonicalGraph', 'CanonicalNode', 'EdgeRef', 'WorkflowFormat', 'decode_inputs', 'normalize',

    # Configuration
    'DEFAULT_NODE_TYPES', 'NodeTypeConfig', 'WidgetLayout',

    # Parser
    'MetadataSummary', 'PromptRecord', 'ValidationResult', 'WorkflowParser', 'default_parser',
    'classify_prompt', 'extract_metadata', 'extract_prompts',
    'generate_workflow_name', 'validate_workflow_json',
]
