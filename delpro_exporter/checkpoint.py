"""
OID Checkpoint Store

Persists the highest milking-session OID applied to the live metrics, so a
restarted exporter does not apply (and double count) the same sessions again.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_OID_FILE = "delpro_last_oid.txt"


def default_oid_file() -> Path:
    """OID file in the current working directory."""
    return Path(os.getcwd()) / DEFAULT_OID_FILE


class OIDCheckpoint:
    """Stores the last processed OID as a decimal number in a small text file."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """
        Initialize checkpoint store.

        Args:
            path: Checkpoint file (defaults to the working directory)
        """
        self.path = Path(path) if path else default_oid_file()
        logger.info(f"Using OID file path: {self.path}")

    def load(self) -> int:
        """
        Load the last processed OID.

        Returns:
            Stored OID, or 0 when no usable checkpoint exists
        """
        if not self.path.exists():
            logger.info(f"No OID checkpoint at {self.path}, starting from OID 0")
            return 0

        try:
            oid = int(self.path.read_text().strip())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable OID checkpoint {self.path}: {e}")
            return 0

        logger.info(f"Loaded last processed OID: {oid}")
        return oid

    def save(self, oid: int) -> bool:
        """
        Save the last processed OID.

        A failed write is logged and reported, never raised: the in-memory
        cursor stays valid for the running process.

        Args:
            oid: OID to persist

        Returns:
            True if the checkpoint was written
        """
        try:
            self.path.write_text(str(oid))
        except OSError as e:
            logger.error(f"Failed to save last OID {oid} to {self.path}: {e}")
            return False

        logger.debug(f"Checkpoint saved: {self.path} -> {oid}")
        return True
