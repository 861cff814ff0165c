"""LLM client singleton."""

import logging
from typing import Optional

from config import runtime_config
from services.llm_client import LLMClient

logger = logging.getLogger(__name__)

_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the process-wide LLM client, built from runtime config on first use."""
    global _client
    if _client is None:
        _client = LLMClient(
            api_key=runtime_config.openai_api_key,
            base_url=runtime_config.openai_base_url,
            timeout=runtime_config.llm_timeout,
        )
        logger.info(f"LLM client ready: model={runtime_config.model_chat}")
    return _client


async def close_llm_client() -> None:
    """Close the singleton (call on shutdown)."""
    global _client
    if _client is not None:
        await _client.close()
        _client = None
