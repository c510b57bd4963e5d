from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from codereview.database import get_db
from codereview.services.llm_provider import LLMProviderService, get_active_provider, service_for
from codereview.services.preferences import credentials_from

router = APIRouter()


@router.post("/test")
async def test_llm_connection(db: AsyncSession = Depends(get_db)):
    """Test the active LLM provider connection."""
    provider = await get_active_provider(db)
    credentials = credentials_from(provider)
    llm_service = service_for(provider)
    try:
        result = await llm_service.test_connection(credentials.model, credentials.api_key)
        return {"success": True, "provider": result["provider"], "model": result["model"]}
    except Exception as e:
        return {"success": False, "error": str(e)}


@router.get("/active-provider")
async def get_active_provider_info(db: AsyncSession = Depends(get_db)):
    """Get information about the active LLM provider."""
    provider = await get_active_provider(db)
    credentials = credentials_from(provider)
    return {
        "configured": bool(credentials.api_key) or credentials.provider_name == "ollama",
        "source": "database" if provider else "environment",
        "provider": credentials.provider_name,
        "display_name": provider.display_name if provider else credentials.provider_name,
        "model": credentials.model,
        "fallback_model": credentials.fallback_model,
    }


@router.get("/models")
async def get_available_models(provider: str = None):
    """Get list of available models with context sizes and pricing."""
    models = LLMProviderService.get_available_models(provider)
    return {"models": models}


@router.get("/model-info/{model_id:path}")
async def get_model_info(model_id: str):
    """Get detailed info about a specific model."""
    info = LLMProviderService.get_model_info(model_id)
    if not info:
        raise HTTPException(status_code=404, detail=f"Model {model_id} not found")
    return {"model_id": model_id, **info}
