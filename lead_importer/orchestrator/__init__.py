"""Workflow orchestration for background lead imports and exports."""

from .service import BatchWriteTimeoutError, ImportOrchestrator, ImportRequestError

__all__ = ["BatchWriteTimeoutError", "ImportOrchestrator", "ImportRequestError"]
