"""Remembered per-session values and the request/stored/default resolution chain."""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from codereview.config import settings
from codereview.database import async_session
from codereview.models import LLMProvider, ReviewPreferences
from codereview.models.targets import AnalysisTarget, build_target
from codereview.schemas import StartAnalysisRequest
from codereview.services.llm_provider import PROVIDER_DEFAULT_URLS, env_base_url, get_active_provider

logger = logging.getLogger(__name__)

DEFAULT_SESSION_KEY = "default"


@dataclass(frozen=True)
class StoredPreferences:
    repository_path: Optional[str] = None
    selected_documents: List[str] = field(default_factory=list)
    documents_folder: Optional[str] = None
    language: Optional[str] = None
    model: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "repository_path": self.repository_path,
            "selected_documents": list(self.selected_documents),
            "documents_folder": self.documents_folder,
            "language": self.language,
            "model": self.model,
        }


@dataclass(frozen=True)
class HardDefaults:
    repository_path: str = "."
    documents_folder: str = "./Documents"
    language: str = "NET"

    @classmethod
    def from_settings(cls) -> "HardDefaults":
        return cls(
            repository_path=settings.default_repository_path,
            documents_folder=settings.default_documents_folder,
            language=settings.default_language,
        )


@dataclass(frozen=True)
class AICredentials:
    provider_name: str
    base_url: str
    api_key: str
    model: str
    fallback_model: Optional[str] = None


@dataclass(frozen=True)
class AnalysisContext:
    """Everything one analysis run needs, after defaults are applied."""
    repository_path: str
    selected_documents: List[str]
    documents_folder: str
    language: str
    target: AnalysisTarget
    requirements: str
    ai: AICredentials

    @property
    def model(self) -> str:
        return self.ai.model


def _first(*values):
    for value in values:
        if value is not None and value != "" and value != []:
            return value
    return None


def resolve(
    request: StartAnalysisRequest,
    stored: Optional[StoredPreferences],
    hard_defaults: HardDefaults,
    ai: AICredentials,
) -> AnalysisContext:
    """Apply request value, then stored value, then hard default, per field."""
    stored = stored or StoredPreferences()
    model = _first(request.model, stored.model, ai.model) or ""
    target = build_target(
        request.analysis_type,
        commit_id=request.commit_id,
        file_path=request.file_path,
        file_content=request.file_content,
        source_branch=request.source_branch,
        target_branch=request.target_branch,
    )
    return AnalysisContext(
        repository_path=_first(request.repository_path, stored.repository_path, hard_defaults.repository_path),
        selected_documents=list(_first(request.selected_documents, stored.selected_documents) or []),
        documents_folder=_first(request.documents_folder, stored.documents_folder, hard_defaults.documents_folder),
        language=_first(request.language, stored.language, hard_defaults.language),
        target=target,
        requirements=(request.requirements or "").strip(),
        ai=AICredentials(
            provider_name=ai.provider_name,
            base_url=ai.base_url,
            api_key=ai.api_key,
            model=model,
            fallback_model=ai.fallback_model or None,
        ),
    )


def credentials_from(provider: Optional[LLMProvider]) -> AICredentials:
    """AI credentials from the active provider row, else from the environment."""
    if provider is not None:
        return AICredentials(
            provider_name=provider.name,
            base_url=provider.api_base_url or PROVIDER_DEFAULT_URLS.get(provider.name, ""),
            api_key=provider.api_key or settings.ai_api_key,
            model=provider.model or settings.ai_model,
            fallback_model=provider.fallback_model or None,
        )
    return AICredentials(
        provider_name=settings.ai_provider,
        base_url=env_base_url(),
        api_key=settings.ai_api_key,
        model=settings.ai_model,
        fallback_model=settings.ai_fallback_model or None,
    )


class PreferenceStore:
    """Reads and writes ReviewPreferences rows keyed by session."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session):
        self.session_factory = session_factory

    async def load(self, session_key: str) -> Optional[StoredPreferences]:
        async with self.session_factory() as db:
            row = await db.get(ReviewPreferences, session_key or DEFAULT_SESSION_KEY)
            if row is None:
                return None
            return StoredPreferences(
                repository_path=row.repository_path or None,
                selected_documents=list(row.selected_documents or []),
                documents_folder=row.documents_folder or None,
                language=row.language or None,
                model=row.model or None,
            )

    async def save(self, session_key: str, preferences: StoredPreferences) -> StoredPreferences:
        session_key = session_key or DEFAULT_SESSION_KEY
        async with self.session_factory() as db:
            row = await db.get(ReviewPreferences, session_key)
            if row is None:
                row = ReviewPreferences(session_key=session_key)
                db.add(row)
            row.repository_path = preferences.repository_path or ""
            row.selected_documents = list(preferences.selected_documents or [])
            row.documents_folder = preferences.documents_folder or ""
            row.language = preferences.language or ""
            row.model = preferences.model or ""
            await db.commit()
        logger.debug(f"[Preferences] Saved preferences for session {session_key}")
        return preferences

    async def remember(self, session_key: str, context: AnalysisContext) -> None:
        await self.save(session_key, StoredPreferences(
            repository_path=context.repository_path,
            selected_documents=list(context.selected_documents),
            documents_folder=context.documents_folder,
            language=context.language,
            model=context.model,
        ))

    async def load_credentials(self) -> AICredentials:
        async with self.session_factory() as db:
            return credentials_from(await get_active_provider(db))


preference_store = PreferenceStore()


def get_preference_store() -> PreferenceStore:
    return preference_store
