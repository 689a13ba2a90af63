"""Aggregated byte progress for one upload run."""
from typing import Dict, Hashable


class UploadProgressState:
    """
    Bytes sent per file, folded into one overall percentage.

    Only touched from progress callbacks on the event loop.
    """

    def __init__(self, total_bytes: int):
        self.total_bytes = total_bytes
        self.bytes_sent: Dict[Hashable, int] = {}

    def update(self, key: Hashable, sent: int, size: int) -> int:
        """Record bytes sent for one file and return the overall percent."""
        sent = min(max(sent, 0), size)
        # Never go backwards for a file
        if sent > self.bytes_sent.get(key, 0):
            self.bytes_sent[key] = sent
        return self.percent

    @property
    def sent_bytes(self) -> int:
        return sum(self.bytes_sent.values())

    @property
    def percent(self) -> int:
        if self.total_bytes <= 0:
            return 0
        # Halves round up
        return (200 * self.sent_bytes + self.total_bytes) // (2 * self.total_bytes)
