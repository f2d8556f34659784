"""
Workspace state persistence.

The ordered workspace name list is stored one name per line in
``<state dir>/workspaces.txt``. Saves are atomic: the list is written to a
temporary file in the same directory and renamed over the canonical file.

Persistence is best-effort. Failures are logged and never propagate; the
in-memory registry stays authoritative.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

WORKSPACE_STATE_FILE = "workspaces.txt"


class WorkspaceStateStore:
    """
    Loads and saves the workspace name list.

    State is stored in: <state dir>/workspaces.txt
    """

    def __init__(self, state_dir: Optional[Path]):
        """
        Initialize state store

        Args:
            state_dir: Directory for the state file, or None to disable persistence
        """
        self.state_dir = state_dir

    @property
    def path(self) -> Optional[Path]:
        if self.state_dir is None:
            return None
        return self.state_dir / WORKSPACE_STATE_FILE

    @property
    def temp_path(self) -> Optional[Path]:
        if self.state_dir is None:
            return None
        return self.state_dir / f"{WORKSPACE_STATE_FILE}.tmp"

    def load(self) -> Optional[List[str]]:
        """
        Load the persisted name list

        Returns:
            Names in order, or None if there is no usable state
            (no state dir, file missing or unreadable, or no non-empty lines)
        """
        path = self.path
        if path is None:
            return None

        try:
            with open(path, "rb") as f:
                raw = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to open workspace state file {path}: {e}")
            return None

        names = []
        for line in raw.decode("utf-8", "surrogateescape").split("\n"):
            name = line.rstrip("\r\n")
            if name:
                names.append(name)

        if not names:
            return None

        logger.debug(f"Loaded {len(names)} workspace name(s) from {path}")
        return names

    def save(self, names: Iterable[str]) -> bool:
        """
        Atomically replace the state file with the given names

        Args:
            names: Workspace names in display order

        Returns:
            True if the state file was replaced
        """
        path = self.path
        tmp_path = self.temp_path
        if path is None or tmp_path is None:
            return False

        try:
            self.state_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create workspace state dir {self.state_dir}: {e}")
            return False

        data = "".join(f"{name}\n" for name in names).encode("utf-8", "surrogateescape")

        try:
            with open(tmp_path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Failed while writing workspace state file {tmp_path}: {e}")
            self._discard(tmp_path)
            return False

        try:
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to replace workspace state file {path}: {e}")
            self._discard(tmp_path)
            return False

        logger.debug(f"Saved workspace state: {path}")
        return True

    @staticmethod
    def _discard(tmp_path: Path) -> None:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove temporary state file {tmp_path}: {e}")
