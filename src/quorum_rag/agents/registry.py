"""
Agent Registry - cached snapshot of active agent definitions and their handles.
"""

import time
from typing import Callable, Dict, List, Optional

from ..core.cache import TTLCache
from ..core.config import settings
from ..core.exceptions import ConfigurationError
from ..core.logging import audit_logger, logger
from ..llm.service import StructuredPromptService
from .base import AgentDefinition, BaseAgent
from .config_store import DEFAULT_AGENT_DEFINITIONS, AgentConfigStore
from .implementations import DEFAULT_AGENT_KEY, create_agent

AgentFactory = Callable[[AgentDefinition], BaseAgent]

SNAPSHOT_KEY = "active_agents"


class AgentRegistry:
    """Holds the active agents loaded from a configuration store.

    The snapshot lives in a ``TTLCache`` and is reloaded once it is older than
    the TTL. Concurrent ``ensure_loaded`` calls share a single load.
    """

    def __init__(
        self,
        agent_factory: Optional[AgentFactory] = None,
        prompt_service: Optional[StructuredPromptService] = None,
        ttl_seconds: Optional[float] = None,
        scope: Optional[str] = None,
        cache: Optional[TTLCache] = None,
    ):
        """Initialize the agent registry.

        Args:
            agent_factory: Builds a handle for a definition; defaults to the
                built-in agent variants
            prompt_service: Prompt service handed to the default variants
            ttl_seconds: Snapshot time-to-live
            scope: Scope passed to the configuration store
            cache: Optional shared cache object
        """
        self.agent_factory = agent_factory or (
            lambda definition: create_agent(definition, prompt_service=prompt_service)
        )
        self.scope = scope
        self.cache: TTLCache = cache or TTLCache(
            ttl_seconds=settings.registry_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.agents: Dict[str, BaseAgent] = {}
        self._default_agent: Optional[BaseAgent] = None

    @property
    def is_loaded(self) -> bool:
        return SNAPSHOT_KEY in self.cache

    async def ensure_loaded(self, config_store: AgentConfigStore) -> None:
        """Load or refresh the snapshot if it is missing or stale.

        Raises:
            ConfigurationError: If the very first load fails or finds no agents
        """
        if not self.cache.is_stale(SNAPSHOT_KEY):
            return

        had_snapshot = self.is_loaded

        async def load() -> List[AgentDefinition]:
            start_time = time.time()
            definitions = await config_store.list_active_agents(self.scope)
            if not definitions:
                raise ConfigurationError("Configuration store returned no active agents")
            self._rebuild(definitions)
            audit_logger.log_event(
                event_type="configuration",
                action="registry_refresh",
                duration_ms=(time.time() - start_time) * 1000,
                metadata={"agents": [definition.key for definition in definitions]},
            )
            return definitions

        try:
            await self.cache.get_or_refresh(SNAPSHOT_KEY, load)
        except Exception as e:
            if not had_snapshot:
                logger.error(f"Failed to load agent configuration: {e}")
                audit_logger.log_event(
                    event_type="configuration",
                    action="registry_refresh",
                    level="error",
                    outcome="error",
                    error_message=str(e),
                )
                if isinstance(e, ConfigurationError):
                    raise
                raise ConfigurationError(f"Failed to load agent configuration: {e}") from e

            logger.warning(f"Agent configuration refresh failed, serving stale snapshot: {e}")
            audit_logger.log_event(
                event_type="configuration",
                action="registry_refresh",
                level="warning",
                outcome="degraded",
                error_message=str(e),
            )

    def _rebuild(self, definitions: List[AgentDefinition]) -> None:
        """Build handles, keeping existing ones whose definition is unchanged."""
        agents: Dict[str, BaseAgent] = {}
        for definition in definitions:
            existing = self.agents.get(definition.key)
            if existing is not None and existing.definition == definition:
                agents[definition.key] = existing
            else:
                agents[definition.key] = self.agent_factory(definition)

        self.agents = agents
        logger.info(f"Loaded {len(agents)} active agents: {', '.join(agents)}")

    def resolve(self, key: Optional[str]) -> BaseAgent:
        """Return the handle for a key, or the default content handle."""
        agent = self.agents.get(key or "")
        if agent is not None:
            return agent

        if key:
            logger.debug(f"Unknown agent '{key}', resolving to {DEFAULT_AGENT_KEY}")
        return self.default_agent

    @property
    def default_agent(self) -> BaseAgent:
        agent = self.agents.get(DEFAULT_AGENT_KEY)
        if agent is not None:
            return agent

        if self._default_agent is None:
            definition = next(
                item for item in DEFAULT_AGENT_DEFINITIONS if item.key == DEFAULT_AGENT_KEY
            )
            self._default_agent = self.agent_factory(definition)
        return self._default_agent

    def active_keys(self) -> List[str]:
        return list(self.agents)

    def list_active(self) -> List[AgentDefinition]:
        snapshot = self.cache.get(SNAPSHOT_KEY)
        return list(snapshot) if snapshot else []

    def get_registry_stats(self) -> Dict[str, object]:
        """Get registry statistics."""
        return {
            "agents": {key: agent.get_info() for key, agent in self.agents.items()},
            "loaded": self.is_loaded,
            "cache": self.cache.snapshot(),
        }
