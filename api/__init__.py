# API module - HTTP text-completion client for the planner
# Secrets come from the environment only and never reach the model

from .client import CompletionClient, LLMClientError, create_client_from_settings

__all__ = ["CompletionClient", "LLMClientError", "create_client_from_settings"]
