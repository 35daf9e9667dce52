"""
Prompt Vault Database Schema
============================

SQLAlchemy models for workflows, extracted prompts and metadata, tags and collections.
"""

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, Boolean,
    ForeignKey, Table, Index
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
import uuid

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


# Many-to-many association tables
workflow_tags = Table(
    'workflow_tags',
    Base.metadata,
    Column('workflow_id', String, ForeignKey('workflows.id', ondelete='CASCADE'), primary_key=True),
    Column('tag_id', String, ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True)
)

workflow_collections = Table(
    'workflow_collections',
    Base.metadata,
    Column('workflow_id', String, ForeignKey('workflows.id', ondelete='CASCADE'), primary_key=True),
    Column('collection_id', String, ForeignKey('collections.id', ondelete='CASCADE'), primary_key=True),
    Column('added_at', DateTime, default=utcnow)
)


class Workflow(Base):
    """Uploaded ComfyUI workflow with its original JSON document."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text)
    workflow_json = Column(JSON, nullable=False)  # Document exactly as uploaded
    category = Column(String(100), index=True)
    is_favorite = Column(Boolean, default=False, index=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    prompts = relationship("Prompt", back_populates="workflow", cascade="all, delete-orphan",
                           order_by="Prompt.position")
    metadata_entries = relationship("WorkflowMetadata", back_populates="workflow",
                                    cascade="all, delete-orphan")
    tags = relationship("Tag", secondary=workflow_tags, back_populates="workflows")
    collections = relationship("Collection", secondary=workflow_collections, back_populates="workflows")

    @property
    def metadata_summary(self) -> dict:
        return {entry.key: entry.value for entry in self.metadata_entries}

    def to_summary(self) -> dict:
        """Row for list views."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "favorite": bool(self.is_favorite),
            "prompt_count": len(self.prompts),
            "tags": [tag.to_dict() for tag in self.tags],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_dict(self) -> dict:
        """Full record including workflow JSON, prompts and metadata."""
        data = self.to_summary()
        data.update({
            "workflow_json": self.workflow_json,
            "prompts": [prompt.to_dict() for prompt in self.prompts],
            "metadata": self.metadata_summary,
            "collections": [{"id": c.id, "name": c.name} for c in self.collections],
        })
        return data


class Prompt(Base):
    """Prompt text extracted from one node of a workflow."""
    __tablename__ = "prompts"

    id = Column(String, primary_key=True, default=_new_id)
    workflow_id = Column(String, ForeignKey('workflows.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, default=0)  # Order of the node in the document
    node_id = Column(String(50), nullable=False)
    node_type = Column(String(100))
    prompt_type = Column(String(20), index=True)  # positive, negative, unknown
    prompt_text = Column(Text, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    workflow = relationship("Workflow", back_populates="prompts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "prompt_type": self.prompt_type,
            "prompt_text": self.prompt_text,
        }


class WorkflowMetadata(Base):
    """One key of a workflow's metadata summary (models, seed, dimensions, ...)."""
    __tablename__ = "metadata"

    id = Column(String, primary_key=True, default=_new_id)
    workflow_id = Column(String, ForeignKey('workflows.id', ondelete='CASCADE'), nullable=False, index=True)
    key = Column(String(100), nullable=False, index=True)
    value = Column(JSON)

    workflow = relationship("Workflow", back_populates="metadata_entries")


class Tag(Base):
    """User-defined tags for organizing workflows."""
    __tablename__ = "tags"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String(100), unique=True, nullable=False, index=True)
    color = Column(String(7))  # Hex color for UI

    created_at = Column(DateTime, default=utcnow)

    workflows = relationship("Workflow", secondary=workflow_tags, back_populates="tags")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color}


class Collection(Base):
    """User-defined collections of workflows."""
    __tablename__ = "collections"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, default="")
    color = Column(String(7), default="#3B82F6")
    icon = Column(String(50), default="folder")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    workflows = relationship("Workflow", secondary=workflow_collections, back_populates="collections")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "workflow_count": len(self.workflows),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# Indices for performance
Index('idx_workflows_created_favorite', Workflow.created_at, Workflow.is_favorite)
