from pydantic import BaseModel
from typing import List, Optional


class StartAnalysisRequest(BaseModel):
    """Body of POST /api/analysis/start. Unset fields fall back to remembered values."""
    repository_path: Optional[str] = None
    selected_documents: Optional[List[str]] = None
    documents_folder: Optional[str] = None
    language: Optional[str] = None
    analysis_type: Optional[str] = "uncommitted"
    commit_id: Optional[str] = None
    file_path: Optional[str] = None
    file_content: Optional[str] = None
    source_branch: Optional[str] = None
    target_branch: Optional[str] = None
    requirements: Optional[str] = None
    model: Optional[str] = None


class PreferencesSchema(BaseModel):
    repository_path: Optional[str] = None
    selected_documents: Optional[List[str]] = None
    documents_folder: Optional[str] = None
    language: Optional[str] = None
    model: Optional[str] = None
