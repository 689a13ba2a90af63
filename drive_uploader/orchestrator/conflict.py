"""Destination folder collision detection."""
import logging
from typing import Optional

from ..models import ConflictDecision, PendingUpload
from ..protocols import IDriveAPI

logger = logging.getLogger(__name__)

ZIP_SUFFIX = ".zip"


def candidate_folder_name(pending: PendingUpload) -> Optional[str]:
    """
    Folder name a selection would create at the destination.

    - first path segment of the first nested entry;
    - a lone ``.zip`` file gives its name without the suffix;
    - anything else is a flat upload with no candidate.
    """
    for entry in pending:
        if entry.top_level_folder:
            return entry.top_level_folder

    if len(pending) == 1:
        name = pending.entries[0].name
        if name.lower().endswith(ZIP_SUFFIX) and len(name) > len(ZIP_SUFFIX):
            return name[:-len(ZIP_SUFFIX)]

    return None


class ConflictDetector:
    """Checks whether a selection would collide with an existing folder."""

    def __init__(self, api: IDriveAPI):
        self._api = api

    async def folder_exists(self, name: str, parent_path: str) -> bool:
        """
        Ask the backend whether the folder exists.

        A failed check counts as "no conflict" so the upload is never
        blocked by it.
        """
        try:
            return await self._api.folder_exists(name, parent_path)
        except Exception as e:
            logger.warning(f"Folder existence check for '{name}' in '{parent_path}' failed: {e}")
            return False

    async def detect(self, pending: PendingUpload, dest_path: str) -> Optional[ConflictDecision]:
        folder_name = candidate_folder_name(pending)
        if folder_name is None:
            logger.debug("Flat selection, skipping conflict check")
            return None

        if await self.folder_exists(folder_name, dest_path):
            logger.info(f"Folder '{folder_name}' already exists in '{dest_path}'")
            return ConflictDecision(folder_name=folder_name)

        return None
