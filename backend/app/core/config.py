from typing import List
from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"

    # Pinecone Assistant (RAG side). Checked per request, not at import.
    PINECONE_API_KEY: str = ""
    PINECONE_ASSISTANT_NAME: str = ""
    PINECONE_ASSISTANT_HOST: str = "https://prod-1-data.ke.pinecone.io"
    PINECONE_CONTROL_HOST: str = "https://api.pinecone.io"
    PINECONE_API_VERSION: str = "2025-04"
    PINECONE_TIMEOUT_SECONDS: float = 120.0

    # OpenAI (plain LLM side of the comparison view)
    OPENAI_API_KEY: str = ""
    # Independent of the request's model, which picks the assistant's model
    COMPARISON_MODEL: str = "gpt-4o"

    # Request defaults
    DEFAULT_MODEL: str = "gpt-4o"
    DEFAULT_TEMPERATURE: float = 0.7

    # CORS
    ALLOWED_ORIGINS: List[str] = ["*"]


settings = Settings()
