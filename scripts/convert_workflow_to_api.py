#!/usr/bin/env python3
"""
Convert a ComfyUI UI workflow to API format and show what the vault extracts from it

Usage:
    python scripts/convert_workflow_to_api.py input_workflow.json [output_workflow.json]
"""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from promptvault import WorkflowFormat, default_parser  # noqa: E402


def print_extraction(workflow):
    prompts = default_parser.extract_prompts(workflow)
    metadata = default_parser.extract_metadata(workflow)

    print(f"\n📝 Prompts ({len(prompts)}):")
    for prompt in prompts:
        text = prompt.prompt_text if len(prompt.prompt_text) <= 70 else prompt.prompt_text[:67] + "..."
        print(f"  [{prompt.prompt_type:>8}] node {prompt.node_id} ({prompt.node_type}): {text}")

    print("\n⚙️ Metadata:")
    for model in metadata.models:
        print(f"  Model:   {model['name']}")
    for sampler in metadata.samplers:
        print(f"  Sampler: {sampler['sampler_name']} / {sampler['scheduler']}")
    if metadata.dimensions:
        print(f"  Size:    {metadata.dimensions['width']}x{metadata.dimensions['height']}")
    print(f"  Seed: {metadata.seed}  Steps: {metadata.steps}  CFG: {metadata.cfg}")


def main():
    if len(sys.argv) not in (2, 3):
        print("Usage: python convert_workflow_to_api.py input_workflow.json [output_workflow.json]")
        print("")
        print("Converts ComfyUI GUI workflow format to API format and lists the extracted prompts.")
        return 1

    input_file = sys.argv[1]
    output_file = sys.argv[2] if len(sys.argv) == 3 else None

    try:
        with open(input_file, 'r', encoding='utf-8') as f:
            workflow = json.load(f)
        print(f"✓ Loaded workflow from {input_file}")
    except Exception as e:
        print(f"Error loading {input_file}: {e}")
        return 1

    validation = default_parser.validate(workflow)
    if not validation.valid:
        print(f"❌ {validation.error}")
        return 1

    graph = default_parser.normalize(workflow)
    if graph.source_format is WorkflowFormat.API:
        print("ℹ️ Workflow is already in API format")
    api_workflow = graph.to_api_format()
    print(f"✓ Converted {len(api_workflow)} nodes to API format")

    if output_file:
        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(api_workflow, f, indent=2)
            print(f"✅ Saved API workflow to {output_file}")
        except Exception as e:
            print(f"Error saving {output_file}: {e}")
            return 1

    print_extraction(graph)
    return 0


if __name__ == '__main__':
    sys.exit(main())
