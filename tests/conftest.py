"""Shared pytest fixtures for all test suites."""

from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from backend.app.config import Settings
from backend.app.db.engine import create_session_factory
from backend.app.db.models import Base
from backend.app.main import Workspace, build_workspace
from backend.app.models.common import HierarchyLevel, SectionType
from backend.app.models.content import default_content_for
from backend.app.models.document import Chapter, Section
from backend.app.models.task import Task
from backend.app.proposals.translator import TranslationContext
from backend.app.tree.snapshot import PlanSnapshot

DOCUMENT_ID = "doc-1"


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, openai_api_key=None)


@pytest.fixture
def snapshot() -> PlanSnapshot:
    """Small fixed plan.

    Chapters:
        c1 Market Analysis (s1 text "Old", s2 list)
            c3 Competitors
        c2 Team
    Tasks:
        t1 H1 Business Fundamentals
            t2 H2 The Business Idea
        t3 H1 Pitch
    """
    s1 = Section(
        id="s1",
        chapter_id="c1",
        section_type=SectionType.text,
        content={"type": "text", "text": "Old"},
        order_index=0,
    )
    s2 = Section(
        id="s2",
        chapter_id="c1",
        section_type=SectionType.list,
        content=default_content_for(SectionType.list),
        order_index=1,
    )
    c3 = Chapter(id="c3", document_id=DOCUMENT_ID, parent_id="c1", title="Competitors")
    c1 = Chapter(
        id="c1",
        document_id=DOCUMENT_ID,
        title="Market Analysis",
        order_index=0,
        sections=[s1, s2],
        children=[c3],
    )
    c2 = Chapter(id="c2", document_id=DOCUMENT_ID, title="Team", order_index=1)

    t2 = Task(
        id="t2",
        plan_id=DOCUMENT_ID,
        parent_task_id="t1",
        title="The Business Idea",
        hierarchy_level=HierarchyLevel.h2,
    )
    t1 = Task(
        id="t1",
        plan_id=DOCUMENT_ID,
        title="Business Fundamentals",
        hierarchy_level=HierarchyLevel.h1,
        children=[t2],
    )
    t3 = Task(
        id="t3",
        plan_id=DOCUMENT_ID,
        title="Pitch",
        hierarchy_level=HierarchyLevel.h1,
        order_index=1,
    )
    return PlanSnapshot(document_id=DOCUMENT_ID, chapters=[c1, c2], tasks=[t1, t3])


@pytest.fixture
def make_context(snapshot: PlanSnapshot):
    """Factory for translation contexts over the fixed snapshot."""

    def _make(message_text: str = "", **overrides) -> TranslationContext:
        return TranslationContext(snapshot=snapshot, message_text=message_text, **overrides)

    return _make


@pytest.fixture
def workspace(settings: Settings) -> Workspace:
    """In-memory stores with all services wired together."""
    return build_workspace(settings)


@pytest.fixture
def sql_session() -> Generator[Session, None, None]:
    """Session on a fresh in-memory SQLite database with the full schema.

    Usage:
        def test_something(sql_session):
            store = SqlDocumentStore(sql_session)
    """
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def sql_workspace(settings: Settings, sql_session: Session) -> Workspace:
    """SQL-backed stores with all services wired together."""
    return build_workspace(settings, session=sql_session)
