"""
Tags and Collections
====================

CRUD for the two ways users organize workflows.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from promptvault.errors import DuplicateNameError

from .database import DatabaseManager
from .models import Collection, Tag, Workflow, utcnow, workflow_tags

logger = logging.getLogger(__name__)


class TagManager:
    """Tag CRUD; tag names are unique."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def list_tags(self) -> List[Dict[str, Any]]:
        """All tags with the number of workflows using each, by name."""
        with self.db.get_session() as session:
            rows = (
                session.query(Tag, func.count(workflow_tags.c.workflow_id))
                .outerjoin(workflow_tags, Tag.id == workflow_tags.c.tag_id)
                .group_by(Tag.id)
                .order_by(Tag.name.asc())
                .all()
            )
            return [{**tag.to_dict(), "workflow_count": count} for tag, count in rows]

    def get_tag(self, tag_id: str) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            tag = session.get(Tag, tag_id)
            return tag.to_dict() if tag else None

    def create_tag(self, name: str, color: str = None) -> Dict[str, Any]:
        with self.db.get_session() as session:
            if session.query(Tag.id).filter_by(name=name).first():
                raise DuplicateNameError("Tag", name)
            tag = Tag(name=name, color=color)
            session.add(tag)
            session.commit()
            return tag.to_dict()

    def update_tag(self, tag_id: str, name: str = None, color: str = None) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            tag = session.get(Tag, tag_id)
            if not tag:
                return None
            if name is not None and name != tag.name:
                if session.query(Tag.id).filter(Tag.name == name, Tag.id != tag_id).first():
                    raise DuplicateNameError("Tag", name)
                tag.name = name
            if color is not None:
                tag.color = color
            session.commit()
            return tag.to_dict()

    def delete_tag(self, tag_id: str) -> bool:
        with self.db.get_session() as session:
            tag = session.get(Tag, tag_id)
            if not tag:
                return False
            session.delete(tag)
            session.commit()
            return True


class CollectionManager:
    """Collection CRUD and workflow membership."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def list_collections(self) -> List[Dict[str, Any]]:
        with self.db.get_session() as session:
            return [c.to_dict() for c in session.query(Collection).order_by(Collection.name.asc()).all()]

    def get_collection(self, collection_id: str, include_workflows: bool = True) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            collection = session.get(Collection, collection_id)
            if not collection:
                return None
            data = collection.to_dict()
            if include_workflows:
                data["workflows"] = [w.to_summary() for w in collection.workflows]
            return data

    def create_collection(self, name: str, description: str = "", color: str = "#3B82F6",
                          icon: str = "folder") -> Dict[str, Any]:
        with self.db.get_session() as session:
            collection = Collection(name=name, description=description, color=color, icon=icon)
            session.add(collection)
            session.commit()
            logger.info(f"Created collection '{name}'")
            return collection.to_dict()

    def update_collection(self, collection_id: str, **updates) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            collection = session.get(Collection, collection_id)
            if not collection:
                return None
            for key in ("name", "description", "color", "icon"):
                if updates.get(key) is not None:
                    setattr(collection, key, updates[key])
            collection.updated_at = utcnow()
            session.commit()
            return collection.to_dict()

    def delete_collection(self, collection_id: str) -> bool:
        with self.db.get_session() as session:
            collection = session.get(Collection, collection_id)
            if not collection:
                return False
            session.delete(collection)
            session.commit()
            return True

    def add_workflow(self, collection_id: str, workflow_id: str) -> Optional[Dict[str, Any]]:
        """Add a workflow to a collection; returns None if either does not exist."""
        with self.db.get_session() as session:
            collection = session.get(Collection, collection_id)
            workflow = session.get(Workflow, workflow_id)
            if not collection or not workflow:
                return None
            if workflow not in collection.workflows:
                collection.workflows.append(workflow)
                collection.updated_at = utcnow()
            session.commit()
            return collection.to_dict()

    def remove_workflow(self, collection_id: str, workflow_id: str) -> bool:
        with self.db.get_session() as session:
            collection = session.get(Collection, collection_id)
            workflow = session.get(Workflow, workflow_id)
            if not collection or not workflow or workflow not in collection.workflows:
                return False
            collection.workflows.remove(workflow)
            collection.updated_at = utcnow()
            session.commit()
            return True

    def collections_for_workflow(self, workflow_id: str) -> Optional[List[Dict[str, Any]]]:
        with self.db.get_session() as session:
            workflow = session.get(Workflow, workflow_id)
            if not workflow:
                return None
            return [c.to_dict() for c in workflow.collections]
