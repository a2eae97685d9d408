"""
Application Layer - Workflow Factory

Wires the Boards client, session store, workflow stages, tool registry and
conversation agent from a YAML configuration profile plus credential
environment variables.

Key Responsibilities:
- Load configuration profiles (dev/prod) from ``configs/<profile>.yaml``
- Load credential material from the environment (and a ``.env`` file)
- Instantiate infrastructure adapters with the profile's tuning
- Inject them into the workflow stages
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from dotenv import load_dotenv

from boardpilot.application.agent import ConversationAgent
from boardpilot.application.executor import ExecutionStage
from boardpilot.application.planner import PlanningStage
from boardpilot.application.specify import SpecifyStage
from boardpilot.application.tools import ToolRegistry
from boardpilot.core.domain.errors import ConfigurationError
from boardpilot.core.interfaces.credentials import CredentialProviderProtocol
from boardpilot.core.interfaces.llm import LLMStreamProtocol
from boardpilot.infrastructure.auth.credentials import create_credential_provider_from_env
from boardpilot.infrastructure.boards.client import API_VERSION, BATCH_CAP, BoardsClient, RetryConfig
from boardpilot.infrastructure.llm.litellm_provider import DEFAULT_MODEL, LiteLLMProvider
from boardpilot.infrastructure.persistence.memory_session_store import InMemorySessionStore


@dataclass
class Workflow:
    """Fully wired application components for one profile."""

    profile: str
    config: dict[str, Any]
    boards: BoardsClient
    sessions: InMemorySessionStore
    specify: SpecifyStage
    planner: PlanningStage
    executor: ExecutionStage
    tools: ToolRegistry
    agent: ConversationAgent

    @property
    def organization_url(self) -> str:
        return self.boards.organization_url

    async def aclose(self) -> None:
        await self.boards.aclose()


class WorkflowFactory:
    """
    Factory for creating workflows with dependency injection.

    Example:
        >>> factory = WorkflowFactory()
        >>> workflow = factory.create_workflow(profile="dev")
        >>> plan = await workflow.planner.plan(session_id, 42, "MyProject")
    """

    def __init__(self, config_dir: str = "configs", env_file: Optional[str] = None):
        """
        Args:
            config_dir: Path to directory containing profile YAML files
            env_file: Optional dotenv file; defaults to ``.env`` lookup
        """
        self.config_dir = Path(config_dir)
        self.env_file = env_file
        self.logger = structlog.get_logger().bind(component="workflow_factory")

    def create_workflow(
        self,
        profile: str = "dev",
        credentials: Optional[CredentialProviderProtocol] = None,
        llm: Optional[LLMStreamProtocol] = None,
        organization_url: Optional[str] = None,
    ) -> Workflow:
        """
        Build every component for ``profile``.

        ``credentials`` and ``llm`` override the environment-derived
        credential provider and the LiteLLM provider.

        Raises:
            ConfigurationError: If the profile is missing or credentials
                cannot be derived from the environment
        """
        config = self._load_profile(profile)
        load_dotenv(self.env_file)

        if credentials is None:
            credentials = create_credential_provider_from_env()
            organization_url = organization_url or credentials.config.organization_url
        if not organization_url:
            raise ConfigurationError("Organization URL is required when credentials are injected")

        self.logger.info("creating_workflow", profile=profile, organization_url=organization_url)

        boards = self._create_boards_client(config, organization_url, credentials)
        sessions = InMemorySessionStore(boards=boards)
        specify = SpecifyStage(boards, sessions)
        planner = PlanningStage(boards, sessions)
        executor = self._create_execution_stage(config, boards, sessions)
        tools = ToolRegistry(boards, specify, planner, executor)
        agent = ConversationAgent(sessions, llm or self._create_llm_provider(config), tools)

        return Workflow(
            profile=profile,
            config=config,
            boards=boards,
            sessions=sessions,
            specify=specify,
            planner=planner,
            executor=executor,
            tools=tools,
            agent=agent,
        )

    def _create_boards_client(
        self,
        config: dict[str, Any],
        organization_url: str,
        credentials: CredentialProviderProtocol,
    ) -> BoardsClient:
        boards_config = config.get("boards", {})
        retry_config = RetryConfig(**config.get("retry_policy", {}))
        return BoardsClient(
            organization_url,
            credentials,
            retry_config=retry_config,
            api_version=str(boards_config.get("api_version", API_VERSION)),
            batch_cap=boards_config.get("batch_cap", BATCH_CAP),
            timeout=boards_config.get("timeout", 30.0),
        )

    def _create_execution_stage(
        self,
        config: dict[str, Any],
        boards: BoardsClient,
        sessions: InMemorySessionStore,
    ) -> ExecutionStage:
        execution_config = config.get("execution", {})
        return ExecutionStage(
            boards,
            sessions,
            default_batch_size=execution_config.get("default_batch_size", 50),
            max_batch_size=execution_config.get("max_batch_size", BATCH_CAP),
            batch_delay=execution_config.get("batch_delay", 1.0),
            link_to_parent=execution_config.get("link_to_parent", True),
        )

    def _create_llm_provider(self, config: dict[str, Any]) -> LiteLLMProvider:
        llm_config = config.get("llm", {})
        return LiteLLMProvider(
            model=llm_config.get("model", DEFAULT_MODEL),
            temperature=llm_config.get("temperature", 0.2),
            max_tokens=llm_config.get("max_tokens"),
        )

    def _load_profile(self, profile: str) -> dict[str, Any]:
        """
        Load configuration profile from YAML file.

        Raises:
            ConfigurationError: If profile YAML not found
        """
        profile_path = self.config_dir / f"{profile}.yaml"

        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise ConfigurationError(f"Profile not found: {profile_path}")

        with open(profile_path) as f:
            config = yaml.safe_load(f) or {}

        self.logger.debug("profile_loaded", profile=profile, sections=list(config))
        return config
