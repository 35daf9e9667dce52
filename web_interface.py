#!/usr/bin/env python3
"""
🗄️ Comfy Prompt Vault

HTTP API for storing ComfyUI workflows and browsing the prompts and generation
settings extracted from them: upload, search, tag, collect, compare, export and import.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from database.database import get_database_manager, WorkflowManager
from database.catalog import TagManager, CollectionManager
from database.transfer import WorkflowTransfer, DUPLICATE_ACTIONS
from promptvault import __version__
from promptvault.compare import compare_workflows
from promptvault.config import get_settings
from promptvault.errors import DuplicateNameError, ImportFormatError, PromptVaultError

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="🗄️ Comfy Prompt Vault",
    description="Store ComfyUI workflows and search the prompts inside them",
    version=__version__
)
api = APIRouter(prefix=settings.api_prefix)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    db_manager = get_database_manager()
    logger.info(f"📁 Using database: {db_manager.database_url}")
    db_manager.create_tables()

    stats = WorkflowManager(db_manager).get_workflow_stats()['summary']
    logger.info(f"📊 Database contains {stats['total_workflows']} workflows")


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def api_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def vault_error(error: PromptVaultError) -> HTTPException:
    """Translate a storage-layer error into its HTTP response."""
    status_code = 409 if isinstance(error, DuplicateNameError) else 400
    return api_error(status_code, error.code, str(error))


def internal_error(action: str, error: Exception) -> HTTPException:
    logger.error(f"Error {action}: {error}", exc_info=True)
    return api_error(500, "INTERNAL_ERROR", str(error))


def not_found(kind: str) -> HTTPException:
    return api_error(404, "NOT_FOUND", f"{kind} not found")


def split_ids(ids: Optional[List[str]]) -> List[str]:
    """Accept both ``?ids=a&ids=b`` and ``?ids=a,b``."""
    return [part.strip() for value in ids or [] for part in value.split(",") if part.strip()]


async def read_upload(file: UploadFile) -> bytes:
    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise api_error(413, "FILE_TOO_LARGE",
                        f"{file.filename} exceeds the {settings.max_upload_bytes} byte upload limit")
    return content


def attachment(filename: str) -> Dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


# Workflows

@api.post("/workflows", status_code=201)
async def create_workflow(request: dict):
    """Validate, parse and store a workflow document sent as JSON."""
    try:
        workflows = WorkflowManager(get_database_manager())
        return workflows.add_workflow_document(
            request.get("workflow_json"),
            name=request.get("name"),
            description=request.get("description"),
            category=request.get("category"),
            favorite=bool(request.get("favorite", False)),
            tags=request.get("tags") or [],
        )

    except PromptVaultError as e:
        raise vault_error(e)
    except Exception as e:
        raise internal_error("creating workflow", e)


@api.post("/workflows/upload")
async def upload_workflows(files: List[UploadFile] = File(...)):
    """Store one workflow per uploaded JSON file; names are generated."""
    workflows = WorkflowManager(get_database_manager())
    results = []

    for file in files:
        try:
            content = await read_upload(file)
            try:
                document = json.loads(content)
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise api_error(400, "INVALID_WORKFLOW_JSON", f"Invalid JSON: {e}")

            workflow = workflows.add_workflow_document(document)
            results.append({
                "filename": file.filename,
                "status": "created",
                "workflow": {key: workflow[key] for key in ("id", "name", "prompt_count")},
            })

        except HTTPException as e:
            results.append({"filename": file.filename, "status": "error", "error": e.detail})
        except PromptVaultError as e:
            results.append({"filename": file.filename, "status": "error",
                            "error": {"code": e.code, "message": str(e)}})
        except Exception as e:
            logger.error(f"Error uploading {file.filename}: {e}", exc_info=True)
            results.append({"filename": file.filename, "status": "error",
                            "error": {"code": "INTERNAL_ERROR", "message": str(e)}})

    created = sum(1 for result in results if result["status"] == "created")
    logger.info(f"Upload finished: {created}/{len(results)} workflows stored")
    return {"results": results}


@api.get("/workflows")
async def list_workflows(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: str = "created_at",
    order: str = "desc",
    category: Optional[str] = None,
    favorite: Optional[bool] = None,
    tag: Optional[str] = None,
):
    """List stored workflows with filters and pagination."""
    try:
        workflows = WorkflowManager(get_database_manager())
        return workflows.list_workflows(page=page, limit=limit, sort_by=sort_by, order=order,
                                        category=category, favorite=favorite, tag=tag)
    except Exception as e:
        raise internal_error("fetching workflows", e)


@api.get("/workflows/search")
async def search_workflows(q: str = Query(..., min_length=1),
                           page: int = Query(1, ge=1),
                           limit: int = Query(20, ge=1, le=100)):
    try:
        workflows = WorkflowManager(get_database_manager())
        return workflows.search_workflows(q, page=page, limit=limit)
    except Exception as e:
        raise internal_error(f"searching for '{q}'", e)


@api.get("/workflows/compare")
async def compare(ids: List[str] = Query(...)):
    """Diff the prompts and metadata of exactly two workflows."""
    workflow_ids = split_ids(ids)
    if len(workflow_ids) != 2:
        raise api_error(400, "INVALID_COMPARISON", "Exactly two workflow ids are required")

    try:
        workflows = WorkflowManager(get_database_manager())
        workflow_a, workflow_b = (workflows.get_workflow(wid) for wid in workflow_ids)
        if workflow_a is None or workflow_b is None:
            raise not_found("Workflow")
        return compare_workflows(workflow_a, workflow_b)

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error("comparing workflows", e)


@api.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str):
    try:
        workflow = WorkflowManager(get_database_manager()).get_workflow(workflow_id)
        if workflow is None:
            raise not_found("Workflow")
        return workflow

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"fetching workflow {workflow_id}", e)


@api.put("/workflows/{workflow_id}")
async def update_workflow(workflow_id: str, request: dict):
    """Update name, description, category or favorite flag."""
    try:
        workflow = WorkflowManager(get_database_manager()).update_workflow(workflow_id, request)
        if workflow is None:
            raise not_found("Workflow")
        return workflow

    except HTTPException:
        raise
    except PromptVaultError as e:
        raise vault_error(e)
    except Exception as e:
        raise internal_error(f"updating workflow {workflow_id}", e)


@api.delete("/workflows/{workflow_id}")
async def delete_workflow(workflow_id: str):
    try:
        if not WorkflowManager(get_database_manager()).delete_workflow(workflow_id):
            raise not_found("Workflow")
        return {"success": True, "message": "Workflow deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"deleting workflow {workflow_id}", e)


@api.patch("/workflows/{workflow_id}/favorite")
async def toggle_favorite(workflow_id: str):
    try:
        workflow = WorkflowManager(get_database_manager()).toggle_favorite(workflow_id)
        if workflow is None:
            raise not_found("Workflow")
        return workflow

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"toggling favorite on {workflow_id}", e)


@api.put("/workflows/{workflow_id}/tags")
async def set_workflow_tags(workflow_id: str, request: dict):
    """Replace the workflow's tags; body ``{"tag_ids": [...]}``."""
    tag_ids = request.get("tag_ids")
    if not isinstance(tag_ids, list):
        raise api_error(400, "INVALID_REQUEST", "tag_ids must be a list")

    try:
        workflow = WorkflowManager(get_database_manager()).set_workflow_tags(workflow_id, tag_ids)
        if workflow is None:
            raise not_found("Workflow")
        return workflow

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"setting tags on {workflow_id}", e)


# Tags

@api.get("/tags")
async def list_tags():
    try:
        return {"tags": TagManager(get_database_manager()).list_tags()}
    except Exception as e:
        raise internal_error("fetching tags", e)


@api.post("/tags", status_code=201)
async def create_tag(request: dict):
    name = (request.get("name") or "").strip()
    if not name:
        raise api_error(400, "INVALID_REQUEST", "Tag name is required")

    try:
        return TagManager(get_database_manager()).create_tag(name, request.get("color"))
    except PromptVaultError as e:
        raise vault_error(e)
    except Exception as e:
        raise internal_error(f"creating tag '{name}'", e)


@api.put("/tags/{tag_id}")
async def update_tag(tag_id: str, request: dict):
    try:
        tag = TagManager(get_database_manager()).update_tag(tag_id, request.get("name"), request.get("color"))
        if tag is None:
            raise not_found("Tag")
        return tag

    except HTTPException:
        raise
    except PromptVaultError as e:
        raise vault_error(e)
    except Exception as e:
        raise internal_error(f"updating tag {tag_id}", e)


@api.delete("/tags/{tag_id}")
async def delete_tag(tag_id: str):
    try:
        if not TagManager(get_database_manager()).delete_tag(tag_id):
            raise not_found("Tag")
        return {"success": True, "message": "Tag deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"deleting tag {tag_id}", e)


# Collections

@api.get("/collections")
async def list_collections():
    try:
        return {"collections": CollectionManager(get_database_manager()).list_collections()}
    except Exception as e:
        raise internal_error("fetching collections", e)


@api.post("/collections", status_code=201)
async def create_collection(request: dict):
    name = (request.get("name") or "").strip()
    if not name:
        raise api_error(400, "INVALID_REQUEST", "Collection name is required")

    fields = {key: request[key] for key in ("description", "color", "icon") if request.get(key) is not None}
    try:
        return CollectionManager(get_database_manager()).create_collection(name, **fields)
    except Exception as e:
        raise internal_error(f"creating collection '{name}'", e)


@api.get("/collections/workflow/{workflow_id}")
async def collections_for_workflow(workflow_id: str):
    try:
        collections = CollectionManager(get_database_manager()).collections_for_workflow(workflow_id)
        if collections is None:
            raise not_found("Workflow")
        return {"collections": collections}

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"fetching collections for {workflow_id}", e)


@api.get("/collections/{collection_id}")
async def get_collection(collection_id: str):
    try:
        collection = CollectionManager(get_database_manager()).get_collection(collection_id)
        if collection is None:
            raise not_found("Collection")
        return collection

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"fetching collection {collection_id}", e)


@api.put("/collections/{collection_id}")
async def update_collection(collection_id: str, request: dict):
    try:
        collection = CollectionManager(get_database_manager()).update_collection(collection_id, **request)
        if collection is None:
            raise not_found("Collection")
        return collection

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"updating collection {collection_id}", e)


@api.delete("/collections/{collection_id}")
async def delete_collection(collection_id: str):
    try:
        if not CollectionManager(get_database_manager()).delete_collection(collection_id):
            raise not_found("Collection")
        return {"success": True, "message": "Collection deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"deleting collection {collection_id}", e)


@api.post("/collections/{collection_id}/workflows")
async def add_workflow_to_collection(collection_id: str, request: dict):
    workflow_id = request.get("workflow_id")
    if not workflow_id:
        raise api_error(400, "INVALID_REQUEST", "workflow_id is required")

    try:
        collection = CollectionManager(get_database_manager()).add_workflow(collection_id, workflow_id)
        if collection is None:
            raise not_found("Collection or workflow")
        return collection

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"adding {workflow_id} to collection {collection_id}", e)


@api.delete("/collections/{collection_id}/workflows/{workflow_id}")
async def remove_workflow_from_collection(collection_id: str, workflow_id: str):
    try:
        if not CollectionManager(get_database_manager()).remove_workflow(collection_id, workflow_id):
            raise not_found("Workflow in collection")
        return {"success": True, "message": "Workflow removed from collection"}

    except HTTPException:
        raise
    except Exception as e:
        raise internal_error(f"removing {workflow_id} from collection {collection_id}", e)


# Export / import

def _transfer() -> WorkflowTransfer:
    return WorkflowTransfer(WorkflowManager(get_database_manager()))


def _export_ids(ids: Optional[List[str]]) -> List[str]:
    workflow_ids = split_ids(ids)
    if not workflow_ids:
        raise api_error(400, "INVALID_REQUEST", "At least one workflow id is required")
    return workflow_ids


@api.get("/export")
async def export_workflows(ids: List[str] = Query(None)):
    """JSON bundle of the selected workflows."""
    workflow_ids = _export_ids(ids)
    try:
        bundle = _transfer().export_to_json(workflow_ids)
        return JSONResponse(content=bundle, headers=attachment("workflows-export.json"))

    except KeyError:
        raise not_found("Workflow")
    except Exception as e:
        raise internal_error("exporting workflows", e)


@api.get("/export/zip")
async def export_workflows_zip(ids: List[str] = Query(None)):
    workflow_ids = _export_ids(ids)
    try:
        archive = _transfer().export_to_zip(workflow_ids)
        return Response(content=archive, media_type="application/zip",
                        headers=attachment("workflows-export.zip"))

    except KeyError:
        raise not_found("Workflow")
    except Exception as e:
        raise internal_error("exporting workflows as ZIP", e)


@api.get("/export/{workflow_id}")
async def export_workflow(workflow_id: str):
    try:
        bundle = _transfer().export_single(workflow_id)
        return JSONResponse(content=bundle, headers=attachment(f"workflow-{workflow_id}.json"))

    except KeyError:
        raise not_found("Workflow")
    except Exception as e:
        raise internal_error(f"exporting workflow {workflow_id}", e)


@api.post("/import")
async def import_workflows(file: UploadFile = File(...), duplicate_action: str = Form("rename")):
    """Load a ``.json`` bundle or a ``.zip`` holding ``workflows.json``."""
    if duplicate_action not in DUPLICATE_ACTIONS:
        raise api_error(400, "INVALID_DUPLICATE_ACTION",
                        f"duplicate_action must be one of {', '.join(DUPLICATE_ACTIONS)}")

    content = await read_upload(file)
    try:
        transfer = _transfer()
        if (file.filename or "").lower().endswith(".zip") or content[:2] == b"PK":
            results = transfer.import_from_zip(content, duplicate_action)
        else:
            try:
                data = json.loads(content)
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise ImportFormatError(f"Invalid JSON file: {e}") from e
            results = transfer.import_from_json(data, duplicate_action)

        return {
            "results": results,
            "summary": {
                "imported": len(results["success"]),
                "skipped": len(results["skipped"]),
                "failed": len(results["errors"]),
            },
        }

    except PromptVaultError as e:
        raise vault_error(e)
    except Exception as e:
        raise internal_error(f"importing {file.filename}", e)


@api.get("/stats")
async def get_stats() -> Dict[str, Any]:
    try:
        return WorkflowManager(get_database_manager()).get_workflow_stats()
    except Exception as e:
        raise internal_error("fetching stats", e)


app.include_router(api)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
