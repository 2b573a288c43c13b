from typing import Annotated

from fastapi import Depends

from app.core.config import settings
from app.core.http import get_http_client
from app.services.assistant import AssistantClient


async def get_assistant_client() -> AssistantClient:
    """Build the assistant client from settings.

    Credentials are not checked here: each call checks them at first use so
    that request validation errors are reported before configuration errors.
    """
    return AssistantClient(
        settings.PINECONE_API_KEY,
        settings.PINECONE_ASSISTANT_NAME,
        http=get_http_client(),
        data_host=settings.PINECONE_ASSISTANT_HOST,
        control_host=settings.PINECONE_CONTROL_HOST,
        api_version=settings.PINECONE_API_VERSION,
    )


Assistant = Annotated[AssistantClient, Depends(get_assistant_client)]
