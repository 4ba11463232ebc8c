"""LLM integration for optional overview summaries."""

from .runner import ChatRequest, LLMRunner, TransientLLMError, post_chat_completion

__all__ = ["ChatRequest", "LLMRunner", "TransientLLMError", "post_chat_completion"]
