"""LLM client adapters."""

from .client import OpenAIChatClient

__all__ = ["OpenAIChatClient"]
