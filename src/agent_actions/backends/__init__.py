"""Model provider backends used by step executors."""

from .base import AIBackend, SearchResult, StructuredGeneration
from .litellm_backend import LiteLLMBackend

__all__ = ["AIBackend", "LiteLLMBackend", "SearchResult", "StructuredGeneration"]
