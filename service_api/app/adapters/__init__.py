"""
Clients for services outside the access layer.
"""

from .llm_client import LLMClient, LLMResponseError

__all__ = ["LLMClient", "LLMResponseError"]
