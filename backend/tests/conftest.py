"""Root conftest: set dummy env vars BEFORE any app module is imported.

pydantic-settings reads the environment when app.core.config is imported, so
these must be set here — at the module level, before any `from app.*` import.
"""
import os

os.environ.setdefault("PINECONE_API_KEY", "pc-test-key")
os.environ.setdefault("PINECONE_ASSISTANT_NAME", "test-assistant")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("APP_ENV", "test")
