"""Orchestrator package - coordinates upload workflows."""
from .core import UploadOrchestrator
from .models import TransferCancelledError, UploadTask

__all__ = ["UploadOrchestrator", "TransferCancelledError", "UploadTask"]
