"""
Prompt Vault Database Package
=============================

Database models, management, and utilities for the Prompt Vault.

This package provides:
- SQLAlchemy models for workflows, prompts, metadata, tags and collections
- Database connection and session management
- Workflow, tag and collection managers
- JSON/ZIP export and import
"""

from .models import Base, Workflow, Prompt, WorkflowMetadata, Tag, Collection
from .database import (
    DatabaseManager, WorkflowManager,
    initialize_database, get_database_manager, close_database
)
from .catalog import TagManager, CollectionManager
from .transfer import WorkflowTransfer

__all__ = [
    # Models
    'Base', 'Workflow', 'Prompt', 'WorkflowMetadata', 'Tag', 'Collection',

    # Database Management
    'DatabaseManager', 'WorkflowManager', 'TagManager', 'CollectionManager', 'WorkflowTransfer',
    'initialize_database', 'get_database_manager', 'close_database'
]
