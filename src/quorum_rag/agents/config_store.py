"""
Agent configuration stores: where the registry loads active agent definitions from.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from sqlalchemy import Boolean, Column, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import settings
from ..core.logging import logger
from .base import AgentDefinition

Base = declarative_base()


class AgentTypeRow(Base):
    """Database row describing one configured agent."""

    __tablename__ = "agent_types"

    key = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, default="")
    is_active = Column(Boolean, default=True, index=True)
    scope = Column(String, nullable=True, index=True)  # None means every scope

    def to_definition(self) -> AgentDefinition:
        return AgentDefinition(
            key=self.key,
            name=self.name,
            description=self.description or "",
            is_active=bool(self.is_active),
        )


DEFAULT_AGENT_DEFINITIONS: List[AgentDefinition] = [
    AgentDefinition(
        key="metadata",
        name="Metadata Agent",
        description="Answers questions about document properties such as dates, senders and types",
    ),
    AgentDefinition(
        key="content",
        name="Content Agent",
        description="Answers questions that require reading document text",
    ),
    AgentDefinition(
        key="casual",
        name="Casual Agent",
        description="Handles greetings and small talk",
    ),
]


class AgentConfigStore(ABC):
    """Source of agent definitions."""

    @abstractmethod
    async def list_active_agents(self, scope: Optional[str] = None) -> List[AgentDefinition]:
        """Return every active agent definition visible to a scope."""
        pass


class InMemoryAgentConfigStore(AgentConfigStore):
    """Config store holding definitions in a list."""

    def __init__(self, definitions: Optional[Iterable[AgentDefinition]] = None):
        self.definitions: List[AgentDefinition] = list(
            DEFAULT_AGENT_DEFINITIONS if definitions is None else definitions
        )
        self.load_count = 0

    async def list_active_agents(self, scope: Optional[str] = None) -> List[AgentDefinition]:
        self.load_count += 1
        return [definition for definition in self.definitions if definition.is_active]


class SQLAgentConfigStore(AgentConfigStore):
    """Config store backed by the ``agent_types`` table."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.database_url
        engine_kwargs = {}
        if self.database_url.startswith("sqlite"):
            # Queries run on worker threads
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, or each thread sees its own empty database
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.database_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

        logger.info("SQLAgentConfigStore initialized")

    async def list_active_agents(self, scope: Optional[str] = None) -> List[AgentDefinition]:
        """Query active agents off the event loop; errors propagate to the registry."""
        return await asyncio.to_thread(self._query_active, scope)

    def _query_active(self, scope: Optional[str]) -> List[AgentDefinition]:
        with self.Session() as session:
            query = session.query(AgentTypeRow).filter(AgentTypeRow.is_active.is_(True))
            if scope is not None:
                query = query.filter((AgentTypeRow.scope.is_(None)) | (AgentTypeRow.scope == scope))
            rows = query.order_by(AgentTypeRow.key).all()
            return [row.to_definition() for row in rows]

    def upsert(self, definition: AgentDefinition, scope: Optional[str] = None) -> None:
        """Insert or update one agent definition."""
        with self.Session() as session:
            try:
                session.merge(
                    AgentTypeRow(
                        key=definition.key,
                        name=definition.name,
                        description=definition.description,
                        is_active=definition.is_active,
                        scope=scope,
                    )
                )
                session.commit()
                logger.debug(f"Stored agent definition {definition.key}")
            except Exception as e:
                session.rollback()
                logger.error(f"Error storing agent definition {definition.key}: {e}")
                raise

    def seed_defaults(self) -> int:
        """Insert the built-in agents that are not configured yet.

        Returns:
            Number of definitions inserted
        """
        with self.Session() as session:
            existing = {key for (key,) in session.query(AgentTypeRow.key).all()}

        inserted = 0
        for definition in DEFAULT_AGENT_DEFINITIONS:
            if definition.key not in existing:
                self.upsert(definition)
                inserted += 1

        if inserted:
            logger.info(f"Seeded {inserted} default agent definitions")
        return inserted
