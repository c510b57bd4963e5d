from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from codereview.database import Base


class LLMProvider(Base):
    """LLM Provider configuration."""
    __tablename__ = "llm_providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)  # openrouter, openai, anthropic, ollama
    display_name = Column(String(200), nullable=False)
    api_key = Column(String(500), default="")
    api_base_url = Column(String(500), default="")
    model = Column(String(200), default="")
    fallback_model = Column(String(200), default="")
    is_active = Column(Boolean, default=False)
    is_configured = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ReviewPreferences(Base):
    """Values remembered per browser session between analyses."""
    __tablename__ = "review_preferences"

    session_key = Column(String(100), primary_key=True)
    repository_path = Column(String(1000), default="")
    selected_documents = Column(JSON, default=list)
    documents_folder = Column(String(1000), default="")
    language = Column(String(50), default="")
    model = Column(String(200), default="")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
