"""Conversational commerce agent: LLM tool orchestration over a store backend."""

__version__ = "0.1.0"
