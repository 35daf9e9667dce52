"""
Workflow Export and Import
==========================

Bundles stored workflows (document, prompts, metadata, tags) as JSON or ZIP,
and loads such bundles back with a configurable duplicate-name policy.
"""

import io
import json
import logging
import zipfile
from datetime import datetime, timezone
from typing import Any, Dict, List

from promptvault.errors import ImportFormatError, InvalidWorkflowError
from promptvault.parser import default_parser, generate_workflow_name

from .database import WorkflowManager

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"
ZIP_MANIFEST = "workflows.json"
DUPLICATE_ACTIONS = ("skip", "rename", "overwrite")

WORKFLOW_EXPORT_FIELDS = ("id", "name", "description", "category", "favorite",
                          "workflow_json", "created_at", "updated_at")
PROMPT_EXPORT_FIELDS = ("node_id", "node_type", "prompt_type", "prompt_text")


def _bundle_entry(workflow: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "workflow": {key: workflow.get(key) for key in WORKFLOW_EXPORT_FIELDS},
        "prompts": [{key: p.get(key) for key in PROMPT_EXPORT_FIELDS} for p in workflow.get("prompts", [])],
        "tags": [{"name": t["name"], "color": t.get("color")} for t in workflow.get("tags", [])],
        "metadata": workflow.get("metadata", {}),
    }


class WorkflowTransfer:
    """Export/import on top of a ``WorkflowManager``."""

    def __init__(self, workflow_manager: WorkflowManager):
        self.workflows = workflow_manager

    def _load(self, workflow_id: str) -> Dict[str, Any]:
        workflow = self.workflows.get_workflow(workflow_id)
        if workflow is None:
            raise KeyError(f"Workflow not found: {workflow_id}")
        return workflow

    def export_to_json(self, workflow_ids: List[str]) -> Dict[str, Any]:
        """Bundle several workflows; raises KeyError for an unknown id."""
        return {
            "version": EXPORT_VERSION,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "workflows": [_bundle_entry(self._load(wid)) for wid in workflow_ids],
        }

    def export_single(self, workflow_id: str) -> Dict[str, Any]:
        return {
            "version": EXPORT_VERSION,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "workflow": _bundle_entry(self._load(workflow_id)),
        }

    def export_to_zip(self, workflow_ids: List[str]) -> bytes:
        """ZIP archive holding the JSON bundle as ``workflows.json``."""
        bundle = self.export_to_json(workflow_ids)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            archive.writestr(ZIP_MANIFEST, json.dumps(bundle, indent=2, ensure_ascii=False))
        return buffer.getvalue()

    def import_from_json(self, data: Any, duplicate_action: str = "rename") -> Dict[str, List]:
        """Recreate workflows from an export bundle.

        Returns ``{"success": [...], "skipped": [...], "errors": [...]}``; one
        bad entry never stops the rest of the batch.
        """
        if duplicate_action not in DUPLICATE_ACTIONS:
            raise ValueError(f"Invalid duplicate action: {duplicate_action}. Must be one of {', '.join(DUPLICATE_ACTIONS)}")
        if not isinstance(data, dict) or not (data.get("workflows") or data.get("workflow")):
            raise ImportFormatError("Invalid import data format")

        entries = data.get("workflows") or [data["workflow"]]
        results = {"success": [], "skipped": [], "errors": []}

        for entry in entries:
            workflow = entry.get("workflow") if isinstance(entry, dict) else None
            original_name = workflow.get("name") if isinstance(workflow, dict) else None
            try:
                if not isinstance(workflow, dict):
                    raise ImportFormatError("Entry has no workflow object")
                created = self._import_entry(entry, workflow, duplicate_action)
                if created is None:
                    results["skipped"].append({"name": original_name, "reason": "Duplicate name"})
                    continue
                results["success"].append({
                    "id": created["id"],
                    "name": created["name"],
                    "original_name": original_name,
                })
            except Exception as e:
                logger.warning(f"Failed to import workflow {original_name or 'Unknown'}: {e}")
                results["errors"].append({"name": original_name or "Unknown", "error": str(e)})

        logger.info(f"Import finished: {len(results['success'])} imported, "
                    f"{len(results['skipped'])} skipped, {len(results['errors'])} failed")
        return results

    def _import_entry(self, entry: Dict[str, Any], workflow: Dict[str, Any], duplicate_action: str):
        document = workflow.get("workflow_json")
        validation = default_parser.validate(document)
        if not validation.valid:
            raise InvalidWorkflowError(validation.error)

        # Bundles without parsed data are parsed again
        graph = default_parser.normalize(document)
        prompts = entry["prompts"] if "prompts" in entry else default_parser.extract_prompts(graph)
        metadata = entry["metadata"] if "metadata" in entry else default_parser.extract_metadata(graph)

        name = workflow.get("name") or generate_workflow_name(graph)
        if self.workflows.is_name_duplicate(name):
            if duplicate_action == "skip":
                return None
            if duplicate_action == "rename":
                name = self.workflows.unique_name(name)

        return self.workflows.create_workflow(
            name=name,
            workflow_json=document,
            prompts=prompts,
            metadata=metadata,
            description=workflow.get("description"),
            category=workflow.get("category"),
            favorite=bool(workflow.get("favorite")),
            tags=entry.get("tags") or [],
            replace_existing=duplicate_action == "overwrite",
        )

    def import_from_zip(self, archive_bytes: bytes, duplicate_action: str = "rename") -> Dict[str, List]:
        try:
            with zipfile.ZipFile(io.BytesIO(archive_bytes)) as archive:
                if ZIP_MANIFEST not in archive.namelist():
                    raise ImportFormatError(f"Invalid ZIP file: {ZIP_MANIFEST} not found")
                data = json.loads(archive.read(ZIP_MANIFEST).decode("utf-8"))
        except zipfile.BadZipFile as e:
            raise ImportFormatError(f"Invalid ZIP file: {e}") from e
        return self.import_from_json(data, duplicate_action)
