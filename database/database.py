"""
Prompt Vault Database Setup and Management
==========================================

Database initialization, session management, and workflow persistence.
"""

import logging
import math
from typing import Optional, List, Dict, Any, Generator, Iterable, Union
from contextlib import contextmanager
from datetime import timedelta

from sqlalchemy import create_engine, event, func, or_, select
from sqlalchemy.orm import sessionmaker, Session, scoped_session
from sqlalchemy.pool import StaticPool

from promptvault.config import get_settings
from promptvault.errors import DuplicateNameError, InvalidWorkflowError
from promptvault.parser import (
    MetadataSummary, PromptRecord, WorkflowParser, default_parser, generate_workflow_name
)

from .models import Base, Workflow, Prompt, WorkflowMetadata, Tag, Collection, utcnow

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    'created_at': Workflow.created_at,
    'updated_at': Workflow.updated_at,
    'name': Workflow.name,
    'favorite': Workflow.is_favorite,
}
UPDATABLE_FIELDS = ('name', 'description', 'category', 'favorite')


class DatabaseManager:
    """Manages database connection, sessions, and schema creation."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured URL
                (SQLite in the project directory by default).
        """
        if database_url is None:
            database_url = get_settings().database_url

        self.database_url = database_url

        # Configure engine based on database type
        if database_url.startswith('sqlite'):
            self.engine = create_engine(
                database_url,
                echo=False,  # Set to True for SQL debugging
                connect_args={
                    "check_same_thread": False,  # Allow multiple threads
                    "timeout": 30
                },
                poolclass=StaticPool,
            )

            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=NORMAL")
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        else:
            # PostgreSQL/MySQL configuration
            self.engine = create_engine(
                database_url,
                echo=False,
                pool_size=10,
                max_overflow=20,
                pool_recycle=3600,
            )

        self.SessionLocal = scoped_session(sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine
        ))

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database tables ready: {self.database_url}")

    def drop_tables(self):
        """Drop all database tables."""
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session with automatic cleanup."""
        session = self.SessionLocal()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close database connections."""
        self.SessionLocal.remove()
        self.engine.dispose()


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': total_pages,
        'has_next': page < total_pages,
        'has_prev': page > 1,
    }


class WorkflowManager:
    """Persists parsed workflows and answers list/search/stat queries."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    def create_workflow(self, name: str, workflow_json: Dict[str, Any],
                        prompts: Iterable[Union[PromptRecord, Dict]] = (),
                        metadata: Union[MetadataSummary, Dict, None] = None,
                        description: str = None, category: str = None,
                        favorite: bool = False, tags: List[Union[str, Dict]] = None,
                        replace_existing: bool = False) -> Dict[str, Any]:
        """Store a workflow together with its extracted prompts and metadata.

        Args:
            name: Unique display name
            workflow_json: The uploaded document, stored unchanged
            prompts: Prompt records from the parser
            metadata: Metadata summary from the parser; one row per key
            tags: Tag names to associate (created when missing)
            replace_existing: Delete a workflow already using ``name`` in the
                same transaction; it survives if the new rows fail to build

        Returns:
            The created workflow as a dict

        Raises:
            DuplicateNameError: if a workflow with this name exists and
                ``replace_existing`` is false
        """
        with self.db.get_session() as session:
            existing = session.query(Workflow).filter_by(name=name).first()
            if existing is not None and not replace_existing:
                raise DuplicateNameError("Workflow", name)

            workflow = Workflow(
                name=name,
                description=description,
                workflow_json=workflow_json,
                category=category,
                is_favorite=bool(favorite),
            )

            for position, prompt in enumerate(prompts or []):
                data = prompt.to_dict() if isinstance(prompt, PromptRecord) else prompt
                workflow.prompts.append(Prompt(
                    position=position,
                    node_id=str(data['node_id']),
                    node_type=data.get('node_type'),
                    prompt_type=data.get('prompt_type'),
                    prompt_text=data['prompt_text'],
                ))

            if isinstance(metadata, MetadataSummary):
                metadata = metadata.to_dict()
            for key, value in (metadata or {}).items():
                workflow.metadata_entries.append(WorkflowMetadata(key=key, value=value))

            # Free the unique name before anything below flushes the new row
            if existing is not None:
                session.delete(existing)
                session.flush()
                logger.info(f"Replacing workflow '{name}' ({existing.id})")

            if tags:
                workflow.tags.extend(self._get_or_create_tags(session, tags))

            session.add(workflow)
            session.commit()
            logger.info(f"Added workflow '{workflow.name}' with {len(workflow.prompts)} prompts")
            return workflow.to_dict()

    def add_workflow_document(self, workflow_json: Any, name: str = None,
                              parser: WorkflowParser = default_parser, **fields) -> Dict[str, Any]:
        """Validate, parse and store an uploaded workflow document.

        The document is rejected before anything is written if validation fails.
        A missing name is generated from the first checkpoint and today's date.

        Raises:
            InvalidWorkflowError: if the document fails validation
            DuplicateNameError: if the name is already used
        """
        validation = parser.validate(workflow_json)
        if not validation.valid:
            raise InvalidWorkflowError(validation.error)

        graph = parser.normalize(workflow_json)
        metadata = parser.extract_metadata(graph)
        prompts = parser.extract_prompts(graph)

        return self.create_workflow(
            name=name or generate_workflow_name(metadata),
            workflow_json=workflow_json,
            prompts=prompts,
            metadata=metadata,
            **fields
        )

    def _name_taken(self, session: Session, name: str, exclude_id: str = None) -> bool:
        query = session.query(Workflow.id).filter(Workflow.name == name)
        if exclude_id:
            query = query.filter(Workflow.id != exclude_id)
        return query.first() is not None

    def _get_or_create_tags(self, session: Session, tag_specs: Iterable[Union[str, Dict]]) -> List[Tag]:
        """Resolve tag names (or ``{"name", "color"}`` dicts) to Tag rows, creating missing ones."""
        wanted: Dict[str, Optional[str]] = {}
        for spec in tag_specs:
            name, color = (spec.get('name'), spec.get('color')) if isinstance(spec, dict) else (spec, None)
            if name and str(name).strip():
                wanted.setdefault(str(name).strip(), color)

        tags = []
        for tag_name, color in wanted.items():
            tag = session.query(Tag).filter_by(name=tag_name).first()
            if not tag:
                tag = Tag(name=tag_name, color=color)
                session.add(tag)
                session.flush()
            tags.append(tag)
        return tags

    def is_name_duplicate(self, name: str, exclude_id: str = None) -> bool:
        with self.db.get_session() as session:
            return self._name_taken(session, name, exclude_id)

    def unique_name(self, base_name: str) -> str:
        """``base_name``, or ``base_name (n)`` with the first free n."""
        name, counter = base_name, 1
        while self.is_name_duplicate(name):
            name = f"{base_name} ({counter})"
            counter += 1
        return name

    def get_workflow(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            workflow = session.get(Workflow, workflow_id)
            return workflow.to_dict() if workflow else None

    def get_workflow_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            workflow = session.query(Workflow).filter_by(name=name).first()
            return workflow.to_dict() if workflow else None

    def list_workflows(self, page: int = 1, limit: int = 20, sort_by: str = 'created_at',
                       order: str = 'desc', category: str = None, favorite: bool = None,
                       tag: str = None) -> Dict[str, Any]:
        """List workflows with filtering, sorting and pagination."""
        page, limit = max(page, 1), max(limit, 1)
        sort_column = SORT_COLUMNS.get(sort_by, Workflow.created_at)
        sort_column = sort_column.asc() if str(order).lower() == 'asc' else sort_column.desc()

        with self.db.get_session() as session:
            query = session.query(Workflow)

            if category:
                query = query.filter(Workflow.category == category)
            if favorite is not None:
                query = query.filter(Workflow.is_favorite == favorite)
            if tag:
                query = query.join(Workflow.tags).filter(Tag.name == tag)

            total = query.count()
            rows = query.order_by(sort_column).offset((page - 1) * limit).limit(limit).all()

            return {
                'workflows': [row.to_summary() for row in rows],
                'pagination': paginate(page, limit, total),
            }

    def search_workflows(self, text: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Case-insensitive substring search over prompt text and workflow names."""
        page, limit = max(page, 1), max(limit, 1)
        pattern = f"%{_escape_like(text)}%"

        with self.db.get_session() as session:
            matching_ids = (
                select(Workflow.id)
                .outerjoin(Prompt, Prompt.workflow_id == Workflow.id)
                .where(or_(Prompt.prompt_text.ilike(pattern, escape="\\"),
                           Workflow.name.ilike(pattern, escape="\\")))
            )
            query = session.query(Workflow).filter(Workflow.id.in_(matching_ids))

            total = query.count()
            rows = query.order_by(Workflow.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

            results = []
            for row in rows:
                summary = row.to_summary()
                summary['snippet'] = _snippet(row.prompts, text)
                results.append(summary)

            return {'workflows': results, 'pagination': paginate(page, limit, total)}

    def update_workflow(self, workflow_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update name, description, category or favorite flag.

        Returns the updated workflow, or None if it does not exist.
        """
        with self.db.get_session() as session:
            workflow = session.get(Workflow, workflow_id)
            if not workflow:
                return None

            if updates.get('name') and self._name_taken(session, updates['name'], workflow_id):
                raise DuplicateNameError("Workflow", updates['name'])

            for key in UPDATABLE_FIELDS:
                if key not in updates:
                    continue
                if key == 'favorite':
                    workflow.is_favorite = bool(updates[key])
                elif key == 'name' and not updates[key]:
                    continue
                else:
                    setattr(workflow, key, updates[key])

            workflow.updated_at = utcnow()
            session.commit()
            return workflow.to_dict()

    def delete_workflow(self, workflow_id: str) -> bool:
        with self.db.get_session() as session:
            workflow = session.get(Workflow, workflow_id)
            if not workflow:
                return False
            session.delete(workflow)
            session.commit()
            logger.info(f"Deleted workflow {workflow_id}")
            return True

    def toggle_favorite(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        with self.db.get_session() as session:
            workflow = session.get(Workflow, workflow_id)
            if not workflow:
                return None
            workflow.is_favorite = not workflow.is_favorite
            workflow.updated_at = utcnow()
            session.commit()
            return workflow.to_summary()

    def set_workflow_tags(self, workflow_id: str, tag_ids: List[str]) -> Optional[Dict[str, Any]]:
        """Replace the workflow's tags with the given tag ids (unknown ids are ignored)."""
        with self.db.get_session() as session:
            workflow = session.get(Workflow, workflow_id)
            if not workflow:
                return None
            tags = session.query(Tag).filter(Tag.id.in_(list(tag_ids))).all() if tag_ids else []
            workflow.tags = tags
            workflow.updated_at = utcnow()
            session.commit()
            return workflow.to_summary()

    def get_workflow_stats(self) -> Dict[str, Any]:
        """Get database statistics for dashboard."""
        with self.db.get_session() as session:
            total_workflows = session.query(Workflow).count()
            week_ago = utcnow() - timedelta(days=7)

            prompt_types = session.query(Prompt.prompt_type, func.count(Prompt.id)) \
                .group_by(Prompt.prompt_type).order_by(func.count(Prompt.id).desc()).all()

            # Model and sampler usage, counted per workflow
            model_usage: Dict[str, int] = {}
            sampler_usage: Dict[str, int] = {}
            entries = session.query(WorkflowMetadata).filter(WorkflowMetadata.key.in_(('models', 'samplers'))).all()
            for entry in entries:
                if entry.key == 'models':
                    names = {model.get('name') for model in entry.value or [] if isinstance(model, dict)}
                    usage = model_usage
                else:
                    names = {s.get('sampler_name') for s in entry.value or [] if isinstance(s, dict)}
                    usage = sampler_usage
                for name in names:
                    if name:
                        usage[str(name)] = usage.get(str(name), 0) + 1

            tag_distribution = [
                {'name': tag.name, 'color': tag.color, 'count': len(tag.workflows)}
                for tag in session.query(Tag).all()
            ]
            tag_distribution.sort(key=lambda t: t['count'], reverse=True)

            return {
                'summary': {
                    'total_workflows': total_workflows,
                    'total_prompts': session.query(Prompt).count(),
                    'total_tags': session.query(Tag).count(),
                    'total_collections': session.query(Collection).count(),
                    'favorite_count': session.query(Workflow).filter_by(is_favorite=True).count(),
                    'recent_activity': session.query(Workflow).filter(Workflow.created_at >= week_ago).count(),
                },
                'prompt_types': [{'type': t or 'unknown', 'count': c} for t, c in prompt_types],
                'model_usage': _top(model_usage, 'model'),
                'sampler_usage': _top(sampler_usage, 'sampler'),
                'tag_distribution': tag_distribution[:10],
            }


def _escape_like(text: str) -> str:
    """Make LIKE wildcards in user input match literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _top(usage: Dict[str, int], label: str, n: int = 10) -> List[Dict[str, Any]]:
    ranked = sorted(usage.items(), key=lambda item: item[1], reverse=True)[:n]
    return [{label: name, 'count': count} for name, count in ranked]


def _snippet(prompts: List[Prompt], text: str, width: int = 64) -> Optional[str]:
    needle = text.lower()
    for prompt in prompts:
        index = prompt.prompt_text.lower().find(needle)
        if index >= 0:
            start = max(index - width // 2, 0)
            end = index + len(text) + width // 2
            prefix = '...' if start > 0 else ''
            suffix = '...' if end < len(prompt.prompt_text) else ''
            return f"{prefix}{prompt.prompt_text[start:end]}{suffix}"
    return None


# Global database manager instance
db_manager: Optional[DatabaseManager] = None


def get_database_manager() -> DatabaseManager:
    """Get or create the global database manager instance."""
    global db_manager
    if db_manager is None:
        db_manager = DatabaseManager()
    return db_manager


def initialize_database(database_url: Optional[str] = None, create_tables: bool = True) -> DatabaseManager:
    """Initialize the global database with optional custom URL."""
    global db_manager
    if db_manager is not None:
        db_manager.close()
    db_manager = DatabaseManager(database_url)

    if create_tables:
        db_manager.create_tables()

    logger.info(f"Database initialized: {db_manager.database_url}")
    return db_manager


def close_database():
    """Close database connections."""
    global db_manager
    if db_manager:
        db_manager.close()
        db_manager = None
