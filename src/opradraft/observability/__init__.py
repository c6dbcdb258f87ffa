"""Observability: prompt registry, structured logging, and MLflow integration helpers."""

from opradraft.observability.logging import get_correlation_id, setup_logging
from opradraft.observability.prompts import get_active_prompt, log_prompt_to_run, render_prompt

__all__ = [
    "get_active_prompt",
    "get_correlation_id",
    "log_prompt_to_run",
    "render_prompt",
    "setup_logging",
]
