"""FastAPI dependency factories."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable

import httpx
from fastapi import HTTPException

from codegate.ai_client import AIReviewEngine
from codegate.config import AIConfig, GitHubConfig, Settings, SettingsError, get_settings, parse_config_blob
from codegate.errors import ConfigurationError
from codegate.github_client import GitHubRepositoryClient
from codegate.logger import get_logger
from codegate.services.conflict_resolver import MergeConflictResolver
from codegate.services.orchestrator import Orchestrator
from codegate.stores import StoreBundle, build_stores
from codegate.tickets import TicketProvider

logger = get_logger()


class ServiceContainer:
    """Process-wide wiring of stores, the repository client and the pipeline services."""

    def __init__(
        self,
        settings: Settings,
        stores: StoreBundle,
        *,
        github_http: httpx.AsyncClient | None = None,
        ai_engine_factory: Callable[[AIConfig], AIReviewEngine] = AIReviewEngine,
        tickets: TicketProvider | None = None,
    ) -> None:
        self.settings = settings
        self.stores = stores
        self._github_http = github_http
        self._ai_engine_factory = ai_engine_factory
        self._repository: GitHubRepositoryClient | None = None
        self.orchestrator = Orchestrator(
            stores.config,
            stores.history,
            ai_engine_factory=ai_engine_factory,
            tickets=tickets,
        )

    async def github_config(self) -> GitHubConfig | None:
        config = await self.orchestrator.load_github_config()
        if config is None:
            config = self.settings.bootstrap_github_config()
            if config is not None:
                logger.info(f"Bootstrapping GitHub configuration for {config.full_name} from the environment")
                await self.stores.config.save("github", config.model_dump())
        return config

    async def refresh_repository(self) -> None:
        """Rebuild the repository client from the stored GitHub configuration."""

        config = await self.github_config()
        previous = self._repository
        self._repository = None
        if config is not None:
            self._repository = GitHubRepositoryClient(
                config,
                comment_ids=self.stores.comment_ids,
                base_url=self.settings.normalized_github_api_base_url,
                timeout=self.settings.http_timeout,
                client=self._github_http,
            )
        self.orchestrator.attach_repository(self._repository)
        if previous is not None:
            await previous.aclose()

    async def repository(self) -> GitHubRepositoryClient:
        if self._repository is None:
            await self.refresh_repository()
        return self.orchestrator.repository

    async def ai_engine(self) -> AIReviewEngine:
        blob = await self.stores.config.get("ai")
        try:
            config = parse_config_blob("ai", blob or {})
        except SettingsError as exc:
            raise ConfigurationError(str(exc)) from exc
        return self._ai_engine_factory(config)

    async def resolver(self, ai_engine: AIReviewEngine | None = None) -> MergeConflictResolver:
        return MergeConflictResolver(await self.repository(), self.stores.resolutions, ai_engine)

    async def aclose(self) -> None:
        if self._repository is not None:
            await self._repository.aclose()
            self._repository = None


def settings_dependency() -> Settings:
    """Resolve application settings, surfacing configuration errors via HTTPException."""

    try:
        return get_settings()
    except SettingsError as exc:
        logger.error(f"Failed to load settings: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@lru_cache(maxsize=1)
def _container_factory() -> ServiceContainer:
    settings = settings_dependency()
    return ServiceContainer(settings, build_stores(settings.db_path))


def container_dependency() -> ServiceContainer:
    """Provide the cached service container."""

    return _container_factory()


def reset_container_cache() -> None:
    """Clear the cached container (primarily for tests)."""

    _container_factory.cache_clear()
