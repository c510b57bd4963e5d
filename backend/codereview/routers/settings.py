from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from codereview.database import get_db
from codereview.models import LLMProvider
from codereview.schemas import PreferencesSchema
from codereview.services.preferences import (
    DEFAULT_SESSION_KEY,
    PreferenceStore,
    StoredPreferences,
    get_preference_store,
)

router = APIRouter()

MASKED_KEY = "***"

DEFAULT_PROVIDERS = [
    {"name": "openrouter", "display_name": "OpenRouter", "api_base_url": "https://openrouter.ai/api/v1",
     "model": "anthropic/claude-3.5-sonnet", "fallback_model": "openai/gpt-4o-mini"},
    {"name": "openai", "display_name": "OpenAI", "model": "gpt-4o", "fallback_model": "gpt-4o-mini"},
    {"name": "anthropic", "display_name": "Anthropic Claude", "model": "claude-3-5-sonnet-20241022",
     "fallback_model": "claude-3-5-haiku-20241022"},
    {"name": "ollama", "display_name": "Ollama (Local)", "api_base_url": "http://localhost:11434",
     "model": "qwen2.5-coder"},
]


class LLMProviderSchema(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    api_key: Optional[str] = ""
    api_base_url: Optional[str] = ""
    model: Optional[str] = ""
    fallback_model: Optional[str] = ""
    is_active: bool = False


def provider_to_dict(p: LLMProvider) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "display_name": p.display_name,
        "api_key": MASKED_KEY if p.api_key else "",
        "api_base_url": p.api_base_url,
        "model": p.model,
        "fallback_model": p.fallback_model,
        "is_active": p.is_active,
        "is_configured": p.is_configured
    }


# LLM Providers
@router.get("/llm-providers")
async def get_llm_providers(db: AsyncSession = Depends(get_db)):
    """Get all LLM provider configurations."""
    result = await db.execute(select(LLMProvider).order_by(LLMProvider.name))
    providers = result.scalars().all()

    # If no providers exist, create defaults
    if not providers:
        for p in DEFAULT_PROVIDERS:
            db.add(LLMProvider(**p, is_configured=p["name"] == "ollama"))
        await db.commit()

        result = await db.execute(select(LLMProvider).order_by(LLMProvider.name))
        providers = result.scalars().all()

    return [provider_to_dict(p) for p in providers]


@router.get("/llm-providers/{provider_id}")
async def get_llm_provider(provider_id: int, db: AsyncSession = Depends(get_db)):
    provider = await db.get(LLMProvider, provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider_to_dict(provider)


@router.put("/llm-providers/{provider_id}")
async def update_llm_provider(
    provider_id: int,
    data: LLMProviderSchema,
    db: AsyncSession = Depends(get_db)
):
    """Update an LLM provider configuration."""
    result = await db.execute(select(LLMProvider).where(LLMProvider.id == provider_id))
    provider = result.scalar_one_or_none()

    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")

    # If setting this provider as active, deactivate others
    if data.is_active:
        await db.execute(
            LLMProvider.__table__.update()
            .where(LLMProvider.id != provider_id)
            .values(is_active=False)
        )

    # Keep old key if *** or empty string is sent (don't accidentally clear the key)
    if data.api_key and data.api_key != MASKED_KEY:
        provider.api_key = data.api_key
    if data.display_name:
        provider.display_name = data.display_name
    provider.api_base_url = data.api_base_url or ""
    provider.model = data.model or ""
    provider.fallback_model = data.fallback_model or ""
    provider.is_active = data.is_active
    # Provider is configured if it has a key (new or existing) or is Ollama
    provider.is_configured = bool(
        provider.api_key or provider.name == "ollama"
    )

    await db.commit()
    return {"success": True}


# Remembered analysis values, per browser session
@router.get("/preferences")
async def get_preferences(
    x_session_id: Optional[str] = Header(default=None),
    store: PreferenceStore = Depends(get_preference_store)
):
    stored = await store.load(x_session_id or DEFAULT_SESSION_KEY)
    return (stored or StoredPreferences()).to_dict()


@router.put("/preferences")
async def update_preferences(
    data: PreferencesSchema,
    x_session_id: Optional[str] = Header(default=None),
    store: PreferenceStore = Depends(get_preference_store)
):
    session_key = x_session_id or DEFAULT_SESSION_KEY
    current = await store.load(session_key) or StoredPreferences()
    updated = StoredPreferences(
        repository_path=data.repository_path if data.repository_path is not None else current.repository_path,
        selected_documents=(
            data.selected_documents if data.selected_documents is not None else current.selected_documents
        ),
        documents_folder=data.documents_folder if data.documents_folder is not None else current.documents_folder,
        language=data.language if data.language is not None else current.language,
        model=data.model if data.model is not None else current.model,
    )
    await store.save(session_key, updated)
    return {"success": True, **updated.to_dict()}
