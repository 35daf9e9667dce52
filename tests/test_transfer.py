import io
import json
import zipfile

import pytest

from database.database import WorkflowManager
from database.transfer import EXPORT_VERSION, WorkflowTransfer
from promptvault.errors import ImportFormatError


@pytest.fixture
def workflows(db_manager):
    return WorkflowManager(db_manager)


@pytest.fixture
def transfer(workflows):
    return WorkflowTransfer(workflows)


def test_export_bundle_shape(workflows, transfer, api_workflow):
    created = workflows.add_workflow_document(api_workflow, name="Exported", tags=[{"name": "sea", "color": "#0000FF"}])

    bundle = transfer.export_to_json([created["id"]])

    assert bundle["version"] == EXPORT_VERSION
    entry = bundle["workflows"][0]
    assert entry["workflow"]["name"] == "Exported"
    assert entry["workflow"]["workflow_json"] == api_workflow
    assert entry["tags"] == [{"name": "sea", "color": "#0000FF"}]
    assert entry["prompts"][0] == {"node_id": "6", "node_type": "CLIPTextEncode",
                                   "prompt_type": "positive", "prompt_text": "a lighthouse at dusk, oil painting"}
    assert transfer.export_single(created["id"])["workflow"] == entry


def test_export_unknown_id(transfer):
    with pytest.raises(KeyError):
        transfer.export_to_json(["nope"])


def test_round_trip_into_fresh_database(tmp_path, workflows, transfer, api_workflow, ui_workflow):
    first = workflows.add_workflow_document(api_workflow, name="First", tags=["a", "b"], favorite=True)
    second = workflows.add_workflow_document(ui_workflow, name="Second")
    archive = transfer.export_to_zip([first["id"], second["id"]])

    from database.database import initialize_database
    fresh = WorkflowManager(initialize_database(f"sqlite:///{tmp_path / 'fresh.db'}"))
    results = WorkflowTransfer(fresh).import_from_zip(archive)

    assert [r["name"] for r in results["success"]] == ["First", "Second"]
    assert results["skipped"] == [] and results["errors"] == []

    restored = fresh.get_workflow_by_name("First")
    assert restored["favorite"] is True
    assert sorted(t["name"] for t in restored["tags"]) == ["a", "b"]
    assert restored["metadata"] == first["metadata"]
    assert [(p["node_id"], p["prompt_type"], p["prompt_text"]) for p in restored["prompts"]] == \
        [(p["node_id"], p["prompt_type"], p["prompt_text"]) for p in first["prompts"]]


def test_duplicate_actions(workflows, transfer, api_workflow):
    created = workflows.add_workflow_document(api_workflow, name="Dup", description="old")
    bundle = transfer.export_to_json([created["id"]])
    bundle["workflows"][0]["workflow"]["description"] = "new"

    skipped = transfer.import_from_json(bundle, "skip")
    assert skipped["skipped"] == [{"name": "Dup", "reason": "Duplicate name"}]

    renamed = transfer.import_from_json(bundle, "rename")
    assert renamed["success"][0]["name"] == "Dup (1)"
    assert renamed["success"][0]["original_name"] == "Dup"

    overwritten = transfer.import_from_json(bundle, "overwrite")
    assert overwritten["success"][0]["name"] == "Dup"
    assert workflows.get_workflow(created["id"]) is None
    assert workflows.get_workflow_by_name("Dup")["description"] == "new"


def test_bundle_without_parsed_data_is_parsed(transfer, workflows, api_workflow):
    bundle = {"workflow": {"name": "Bare", "workflow_json": api_workflow}}

    results = transfer.import_from_json(bundle)

    stored = workflows.get_workflow(results["success"][0]["id"])
    assert len(stored["prompts"]) == 2
    assert stored["metadata"]["steps"] == 30


def test_bad_entries_are_collected(transfer, api_workflow):
    bundle = {"workflows": [
        {"workflow": {"name": "Good", "workflow_json": api_workflow}},
        {"workflow": {"name": "Bad", "workflow_json": {"1": {"inputs": {}}}}},
        "not an entry",
    ]}

    results = transfer.import_from_json(bundle)

    assert [r["name"] for r in results["success"]] == ["Good"]
    assert [e["name"] for e in results["errors"]] == ["Bad", "Unknown"]
    assert "missing class_type" in results["errors"][0]["error"]


def test_invalid_import_data(transfer):
    with pytest.raises(ImportFormatError):
        transfer.import_from_json({"something": []})
    with pytest.raises(ValueError):
        transfer.import_from_json({"workflows": []}, "merge")


def test_invalid_zip(transfer):
    with pytest.raises(ImportFormatError):
        transfer.import_from_zip(b"not a zip")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("other.json", json.dumps({"workflows": []}))
    with pytest.raises(ImportFormatError, match="workflows.json"):
        transfer.import_from_zip(buffer.getvalue())


def test_failed_overwrite_keeps_original(workflows, transfer, api_workflow):
    created = workflows.add_workflow_document(api_workflow, name="Solid", description="original")
    bundle = {"workflows": [{
        "workflow": {"name": "Solid", "description": "replacement", "workflow_json": api_workflow},
        "prompts": [{"prompt_text": "missing node id"}],
    }]}

    results = transfer.import_from_json(bundle, "overwrite")

    assert results["success"] == []
    assert [e["name"] for e in results["errors"]] == ["Solid"]
    kept = workflows.get_workflow_by_name("Solid")
    assert kept["id"] == created["id"]
    assert kept["description"] == "original"
