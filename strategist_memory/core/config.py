"""Configuration management for the Strategist memory engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Process-wide fallback key; per-user keys in user_settings take precedence
    OPENAI_API_KEY: str | None = Field(default=None, description="Default OpenAI API key")

    # Environment
    MEMORY_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Models
    SUMMARY_MODEL: str = Field(default="gpt-4o-mini", description="Model for summaries and decisions")
    PROFILE_MODEL: str = Field(default="gpt-4o-mini", description="Model for project profile narrative")
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Input budgets
    SUMMARY_CHAR_LIMIT: int = Field(
        default=3000, description="Max normalized characters sent for summarization"
    )
    EMBEDDING_CHAR_LIMIT: int = Field(
        default=8000, description="Max characters for free-text embedding inputs"
    )

    # Chunking policy
    CHUNK_MAX_CHARS: int = Field(default=1200, description="Max characters per chunk")
    CHUNK_OVERLAP: int = Field(default=120, description="Characters shared by adjacent chunks")

    # External call limits
    LLM_TIMEOUT_SECONDS: float = Field(default=30.0, description="Per-call model timeout")
    LLM_MAX_RETRIES: int = Field(default=2, description="Client retries on transient errors")

    # Retrieval
    PROFILE_MEMORY_LIMIT: int = Field(
        default=3, description="Recent memory entries folded into the project profile"
    )
    SUGGESTION_TOP_K: int = Field(default=5, description="Step suggestions returned")
    CONTEXT_TOP_K: int = Field(default=3, description="Default context search results")
    CONTEXT_MIN_SIMILARITY: float = Field(
        default=0.25, description="Cosine similarity floor for context retrieval"
    )
    ASSISTANT_MEMORY_CHAR_LIMIT: int = Field(
        default=2000, description="Character budget of the assistant memory block"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
