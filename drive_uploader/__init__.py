"""
drive_uploader - Upload orchestration for the drive storage backend.

Selection (file picker, folder picker, dropped entries) is checked for a
top-level folder collision, then uploaded in concurrent batches with one
aggregated progress percentage.

Usage:
    from drive_uploader import DriveAPIClient, UploadOrchestrator, UploadConfig

    config = UploadConfig.from_env()
    async with DriveAPIClient(config.api_url, config.token) as api:
        orchestrator = UploadOrchestrator(api, "/Projects", config)
        orchestrator.on_progress(lambda percent: print(f"{percent}%"))

        phase = await orchestrator.select_folder(Path("Photos"))

        # Folder "Photos" already exists in /Projects
        if phase == UploadPhase.CONFLICT_PENDING:
            phase = await orchestrator.rename("Photos 2024")
"""
from .orchestrator import UploadOrchestrator
from .models import (
    ConflictAction,
    ConflictDecision,
    PendingUpload,
    UploadConfig,
    UploadEntry,
    UploadPhase,
)
from .services import DriveAPIClient, DriveAPIError

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    # Models
    "ConflictAction",
    "ConflictDecision",
    "PendingUpload",
    "UploadConfig",
    "UploadEntry",
    "UploadPhase",
    # Services
    "DriveAPIClient",
    "DriveAPIError",
]
