import json
from datetime import date

from promptvault.graph import normalize
from promptvault.node_types import DEFAULT_NODE_TYPES
from promptvault.parser import (
    MetadataSummary, PromptRecord, WorkflowParser,
    classify_prompt, extract_metadata, extract_prompts,
    generate_workflow_name, validate_workflow_json,
)


# Prompts

def test_api_prompts_are_trimmed_and_classified(api_workflow):
    prompts = extract_prompts(api_workflow)

    assert [p.to_dict() for p in prompts] == [
        {"node_id": "6", "node_type": "CLIPTextEncode", "prompt_type": "positive",
         "prompt_text": "a lighthouse at dusk, oil painting"},
        {"node_id": "7", "node_type": "CLIPTextEncode", "prompt_type": "negative",
         "prompt_text": "blurry, low quality"},
    ]


def test_scenario_title_and_sampler_agree():
    doc = {
        "3": {"class_type": "CLIPTextEncode", "inputs": {"text": "a cat"}, "_meta": {"title": "Positive"}},
        "5": {"class_type": "KSampler", "inputs": {"positive": ["3", 0]}},
    }
    assert extract_prompts(doc) == [PromptRecord("3", "CLIPTextEncode", "positive", "a cat")]


def test_ui_clip_text_encode_gives_one_record_per_node(ui_workflow):
    prompts = extract_prompts(ui_workflow)

    assert [(p.node_id, p.prompt_type, p.prompt_text) for p in prompts] == [
        ("6", "positive", "a red fox in the snow"),
        ("7", "negative", "watermark, text"),
    ]


def test_negative_from_linked_sampler_slot():
    doc = {
        "nodes": [
            {"id": 3, "type": "KSampler", "inputs": [{"name": "negative", "link": 7}]},
            {"id": 7, "type": "CLIPTextEncode", "widgets_values": ["blurry"]},
        ]
    }
    graph = normalize(doc)
    assert classify_prompt("7", graph["7"], graph) == "negative"


def test_title_alone_decides_polarity():
    doc = {"1": {"class_type": "CLIPTextEncode", "inputs": {"text": "sunset"}, "_meta": {"title": "Positive Prompt"}}}
    graph = normalize(doc)
    assert classify_prompt("1", graph["1"], graph) == "positive"


def test_negative_title_wins_over_sampler_slot():
    doc = {
        "1": {"class_type": "CLIPTextEncode", "inputs": {"text": "x"}, "_meta": {"title": "Negative (style)"}},
        "2": {"class_type": "KSampler", "inputs": {"positive": ["1", 0]}},
    }
    assert extract_prompts(doc)[0].prompt_type == "negative"


def test_input_key_polarity():
    doc = {"1": {"class_type": "CLIPTextEncodeSDXL", "inputs": {"positive": "a dog"}}}
    prompt = extract_prompts(doc)[0]
    assert prompt.prompt_type == "positive"
    assert prompt.prompt_text == "a dog"


def test_non_sampler_consumer_is_ignored():
    doc = {
        "1": {"class_type": "CLIPTextEncode", "inputs": {"text": "x"}},
        "2": {"class_type": "SomeCustomNode", "inputs": {"negative": ["1", 0]}},
    }
    assert extract_prompts(doc)[0].prompt_type == "unknown"


def test_linked_or_empty_text_is_skipped():
    doc = {
        "1": {"class_type": "CLIPTextEncode", "inputs": {"text": ["9", 0]}},
        "2": {"class_type": "CLIPTextEncode", "inputs": {"text": ""}},
        "9": {"class_type": "CLIPTextEncode", "inputs": {"text": "kept"}},
    }
    assert [p.node_id for p in extract_prompts(doc)] == ["9"]


def test_whitespace_only_text_is_recorded_empty():
    doc = {"1": {"class_type": "CLIPTextEncode", "inputs": {"text": "   "}}}
    assert extract_prompts(doc)[0].prompt_text == ""


def test_custom_prompt_node_types():
    parser = WorkflowParser(DEFAULT_NODE_TYPES.extend(prompt_types={"ShowText"}))
    doc = {"1": {"class_type": "ShowText", "inputs": {"text": "custom"}}}

    assert extract_prompts(doc) == []
    assert parser.extract_prompts(doc)[0].prompt_text == "custom"


# Metadata

def test_api_metadata(api_workflow):
    metadata = extract_metadata(api_workflow)

    assert metadata.models == [{"type": "checkpoint", "name": "sd_xl_base_1.0.safetensors", "nodeId": "4"}]
    assert metadata.samplers == [{"sampler_name": "euler", "scheduler": "normal", "nodeId": "3"}]
    assert metadata.dimensions == {"width": 1024, "height": 768, "nodeId": "5"}
    assert (metadata.seed, metadata.steps, metadata.cfg, metadata.scheduler) == (42, 30, 7.5, "normal")
    assert metadata.vaes == []


def test_ui_metadata(ui_workflow):
    metadata = extract_metadata(ui_workflow)

    assert metadata.models[0]["name"] == "dreamshaper_8.safetensors"
    assert metadata.dimensions == {"width": 512, "height": 640, "nodeId": "5"}
    assert (metadata.seed, metadata.steps, metadata.cfg) == (1234, 25, 6.0)
    assert metadata.samplers == [{"sampler_name": "dpmpp_2m", "scheduler": "karras", "nodeId": "3"}]


def test_short_advanced_sampler_contributes_no_scalars():
    doc = {"nodes": [{"id": 1, "type": "KSamplerAdvanced", "widgets_values": [5, 20, 8.0, "euler"]}]}
    metadata = extract_metadata(doc)

    assert (metadata.seed, metadata.steps, metadata.cfg, metadata.scheduler) == (None, None, None, None)
    assert metadata.samplers == [{"sampler_name": None, "scheduler": None, "nodeId": "1"}]


def test_last_sampler_wins():
    doc = {
        "1": {"class_type": "KSampler", "inputs": {"seed": 1, "steps": 10}},
        "2": {"class_type": "KSamplerAdvanced", "inputs": {"seed": 2}},
    }
    metadata = extract_metadata(doc)
    assert metadata.seed == 2
    assert metadata.steps == 10
    assert len(metadata.samplers) == 2


def test_linked_seed_is_not_a_value():
    doc = {
        "1": {"class_type": "KSampler", "inputs": {"seed": ["5", 0], "steps": 20}},
        "5": {"class_type": "PrimitiveNode", "inputs": {}},
    }
    metadata = extract_metadata(doc)
    assert metadata.seed is None
    assert metadata.steps == 20


def test_vae_loader_and_unnamed_vae_nodes():
    doc = {
        "1": {"class_type": "VAELoader", "inputs": {"vae_name": "sdxl_vae.safetensors"}},
        "2": {"class_type": "VAEDecode", "inputs": {"vae": ["1", 0]}},
    }
    assert extract_metadata(doc).vaes == [{"name": "sdxl_vae.safetensors", "nodeId": "1"}]


def test_metadata_is_idempotent(api_workflow):
    graph = normalize(api_workflow)
    first = json.dumps(extract_metadata(graph).to_dict(), sort_keys=True)
    second = json.dumps(extract_metadata(graph).to_dict(), sort_keys=True)
    assert first == second


def test_metadata_of_garbage_is_empty():
    assert extract_metadata("nope") == MetadataSummary()
    assert extract_prompts(None) == []


# Validation

def test_validation_messages():
    assert validate_workflow_json([]) == (False, "Invalid JSON: not an object")
    assert validate_workflow_json({}) == (False, "Invalid JSON: empty workflow")
    assert validate_workflow_json({"foo": 1}) == (False, "Invalid JSON: no nodes found")
    assert validate_workflow_json({"nodes": []}) == (False, "Invalid JSON: no nodes found")
    assert validate_workflow_json({"3": {"inputs": {}}}) == (False, "Invalid node 3: missing class_type")
    assert validate_workflow_json({"nodes": [{"id": 9}]}) == (False, "Invalid node 9: missing type")


def test_normalized_documents_validate(api_workflow, ui_workflow):
    for doc in (api_workflow, ui_workflow):
        graph = normalize(doc)
        assert len(graph) > 0
        assert all(node.class_type for node in graph.values())
        assert validate_workflow_json(doc).valid
        assert validate_workflow_json(graph.document).valid


# Names

def test_name_from_first_checkpoint(api_workflow):
    assert generate_workflow_name(api_workflow, today=date(2024, 5, 1)) == "sd xl base 1.0 - 2024-05-01"


def test_name_without_checkpoint():
    doc = {"1": {"class_type": "KSampler", "inputs": {}}}
    assert generate_workflow_name(doc, today=date(2024, 5, 1)) == "Workflow - 2024-05-01"


def test_name_from_metadata_summary():
    metadata = MetadataSummary(models=[{"type": "checkpoint", "name": "my-model_v2.ckpt", "nodeId": "1"}])
    assert generate_workflow_name(metadata, today=date(2023, 12, 31)) == "my model v2 - 2023-12-31"


def test_non_string_types_are_rejected():
    assert validate_workflow_json({"nodes": [{"id": 4, "type": ["CLIPTextEncode"]}]}) == \
        (False, "Invalid node 4: missing type")
    assert validate_workflow_json({"1": {"class_type": {"name": "KSampler"}}}) == \
        (False, "Invalid node 1: missing class_type")


def test_junk_entries_fail_round_trip_precondition_and_validation():
    docs = [
        {"1": {"class_type": "CLIPTextEncode", "inputs": {"text": "a cat"}}, "2": "junk"},
        {"nodes": [7, {"id": 1, "type": "CLIPTextEncode", "widgets_values": ["a cat"]}]},
        {"nodes": [{"id": 1, "type": ["CLIPTextEncode"], "widgets_values": ["a cat"]}]},
    ]
    for doc in docs:
        graph = normalize(doc)
        assert len(graph) > 0
        assert not all(node.class_type for node in graph.values())
        assert not validate_workflow_json(doc).valid


def test_extraction_survives_odd_slots():
    doc = {"nodes": [
        {"id": 1, "type": "CLIPTextEncode", "widgets_values": ["a cat"]},
        {"id": 2, "type": "KSampler", "inputs": [{"name": "positive", "link": {"x": 1}}]},
    ]}

    assert validate_workflow_json(doc).valid
    assert [(p.node_id, p.prompt_text) for p in extract_prompts(doc)] == [("1", "a cat")]
    assert extract_metadata(doc).samplers == [{"sampler_name": None, "scheduler": None, "nodeId": "2"}]
