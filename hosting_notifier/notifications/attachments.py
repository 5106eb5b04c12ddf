"""Lookup of uploaded domain documents.

The dashboard stores an upload for entity 12 as ``12_<original filename>``
in one directory. The part after the first underscore is used as the
attachment filename.
"""

import logging
import mimetypes
from pathlib import Path
from typing import List, Optional, Union

from .models import Attachment, AttachmentError

logger = logging.getLogger(__name__)


class AttachmentResolver:
    """Finds and reads ``{entity_id}_{filename}`` files in ``upload_dir``."""

    def __init__(self, upload_dir: Union[str, Path]):
        self.upload_dir = Path(upload_dir)

    def find_attachment(self, entity_id: int) -> Optional[Path]:
        """Path of the entity's upload, the newest one if there are several."""
        if not self.upload_dir.is_dir():
            return None

        candidates: List[Path] = [
            path for path in self.upload_dir.glob(f"{entity_id}_*") if path.is_file()
        ]
        if not candidates:
            return None

        return max(candidates, key=lambda path: (path.stat().st_mtime, path.name))

    def load(self, entity_id: int) -> Attachment:
        """Read the entity's upload.

        Raises:
            AttachmentError: If there is no upload or it cannot be read
        """
        path = self.find_attachment(entity_id)
        if path is None:
            raise AttachmentError(
                f"No document found for entity {entity_id} in {self.upload_dir}"
            )

        try:
            content = path.read_bytes()
        except OSError as e:
            raise AttachmentError(f"Cannot read {path}: {e}") from e

        filename = path.name.split("_", 1)[1] or path.name
        mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"

        logger.debug(f"Loaded attachment {path} ({len(content)} bytes)")
        return Attachment(filename=filename, content=content, mime_type=mime_type)
