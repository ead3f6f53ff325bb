"""Prompt assembly and personas."""

from .manager import PromptManager
from .personas import PERSONAS, Persona, get_persona

__all__ = ["PERSONAS", "Persona", "PromptManager", "get_persona"]
