import os
import tempfile
import logging
from typing import BinaryIO, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


class StagingArea:
    """
    Temporary on-disk files belonging to a single upload request.

    Use as a context manager: every file opened through ``open_file`` is
    closed and removed when the block exits, whatever the outcome. Names are
    prefixed with the request id so concurrent requests never collide.
    """

    def __init__(self, directory: str, request_id: Optional[str] = None):
        self.directory = directory
        self.request_id = request_id or uuid4().hex
        self._handles: List[BinaryIO] = []

    def __enter__(self) -> "StagingArea":
        os.makedirs(self.directory, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False

    @property
    def paths(self) -> List[str]:
        return [handle.name for handle in self._handles]

    def open_file(self, suffix: str = "") -> BinaryIO:
        handle = tempfile.NamedTemporaryFile(
            mode="w+b",
            dir=self.directory,
            prefix=f"{self.request_id}-",
            suffix=suffix,
            delete=False,
        )
        self._handles.append(handle)
        return handle

    def release(self) -> None:
        handles, self._handles = self._handles, []
        for handle in handles:
            handle.close()
            try:
                os.unlink(handle.name)
            except FileNotFoundError:
                continue
            except OSError as exc:
                # cleanup problems never change the request outcome
                logger.warning("Failed to delete staged file %s: %s", handle.name, exc)
        if handles:
            logger.debug("Released %d staged file(s) for request %s", len(handles), self.request_id)
