"""
Attachment-extraction sink.

Writes the binary parts of multi-recipient messages (images, video, audio and
other application payloads) to standalone files. Part bodies arrive as base64
text and are decoded here.

File names are ``<name>_<message-index>-<part-index>.<extension>``:
- name: the part's ``name`` (or ``fn``) without its extension, reduced to
  filesystem-safe characters; ``attachment`` when the source gives none
- message-index: this sink's 0-based sequence number of the message
- part-index: 0-based position of the part within the message
- extension: from the source name, else guessed from the content type,
  else ``bin``

When two parts derive the same name the later write replaces the earlier
one (last write wins). A part that cannot be decoded or written becomes an
ATTACHMENT_ERROR diagnostic; the remaining parts and records continue.
"""

import base64
import binascii
import logging
import mimetypes
import re
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

from ..exceptions import SinkError
from ..interfaces import RecordSinkInterface
from ..models import BackupInfo, Part, RecordKind
from ..utils import StringUtils
from ..validation.diagnostics import DiagnosticLog, DiagnosticCategory

PLACEHOLDER_NAME = "attachment"
DEFAULT_EXTENSION = "bin"
BINARY_TYPE_PREFIXES = ("image/", "video/", "audio/", "application/")
NON_BINARY_TYPES = frozenset(("application/smil", "application/vnd.wap.multipart.related"))

_UNSAFE_CHARACTERS = re.compile(r'[^\w.\-]+')


def is_binary_part(part: Part) -> bool:
    """True when the part declares a binary content type and carries a payload."""
    content_type = part.content_type.split(';', 1)[0].strip().lower()
    if content_type in NON_BINARY_TYPES:
        return False
    return content_type.startswith(BINARY_TYPE_PREFIXES) and part.has_payload


def derive_attachment_name(part: Part, message_index: int, part_index: int) -> str:
    """
    Build the deterministic output file name for a part.

    Examples:
        name='IMG_0042.jpg', message 3, part 1 -> 'IMG_0042_3-1.jpg'
        no name, content type image/png, message 0, part 2 -> 'attachment_0-2.png'

    Args:
        part: The attachment part
        message_index: Sequence number of the owning message
        part_index: Position of the part within the message

    Returns:
        File name without directory
    """
    source_name = next(
        (candidate for candidate in (part.name, part.file_name) if not StringUtils.is_null_text(candidate)),
        ''
    )
    # Keep only the final path component; names occasionally carry a path
    source_name = PurePosixPath(source_name.replace('\\', '/')).name

    stem, dot, extension = source_name.rpartition('.')
    if not dot:
        stem, extension = source_name, ''
    stem = _UNSAFE_CHARACTERS.sub('_', stem).strip('._') or PLACEHOLDER_NAME
    extension = _UNSAFE_CHARACTERS.sub('', extension).lower()

    if not extension:
        content_type = part.content_type.split(';', 1)[0].strip().lower()
        guessed = mimetypes.guess_extension(content_type) if content_type else None
        extension = guessed.lstrip('.') if guessed else DEFAULT_EXTENSION

    return f"{stem}_{message_index}-{part_index}.{extension}"


class AttachmentSink(RecordSinkInterface):
    """
    Extracts binary MMS parts to files in one directory.

    Attributes:
        parts_identified: Binary parts seen
        parts_written: Binary parts successfully written
        errors: One message per part that failed
    """

    name = "attachments"

    def __init__(self, directory: Union[str, Path], diagnostics: Optional[DiagnosticLog] = None):
        """
        Prepare the attachment directory.

        Args:
            directory: Directory to write into (created when missing)
            diagnostics: Optional collector for per-part failures

        Raises:
            SinkError: If the directory cannot be created
        """
        self.logger = logging.getLogger(__name__)
        self.directory = Path(directory)
        self.diagnostics = diagnostics
        self.source_file: Optional[str] = None
        self.message_index = 0
        self.parts_identified = 0
        self.parts_written = 0
        self.errors: List[str] = []

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkError(f"Unable to create attachment directory {self.directory}: {e}", sink_name=self.name)

    def begin(self, source_file: str, backup_info: BackupInfo) -> None:
        self.source_file = source_file

    def accept(self, record) -> None:
        if record.kind is not RecordKind.MMS:
            return
        message_index = self.message_index
        self.message_index += 1
        for part_index, part in enumerate(record.parts):
            if is_binary_part(part):
                self._extract(part, message_index, part_index)

    def commit(self) -> None:
        self.logger.debug(
            f"Attachments after {self.source_file}: {self.parts_written}/{self.parts_identified} written"
        )

    def rollback(self) -> None:
        # Files already extracted for the aborted backup stay on disk
        pass

    def close(self) -> None:
        self.logger.info(
            f"Attachments: {self.parts_identified} identified, {self.parts_written} written, "
            f"{len(self.errors)} failed"
        )

    def _extract(self, part: Part, message_index: int, part_index: int) -> None:
        self.parts_identified += 1
        file_name = derive_attachment_name(part, message_index, part_index)
        target = self.directory / file_name
        try:
            payload = base64.b64decode(part.data)
            target.write_bytes(payload)
        except (binascii.Error, ValueError, OSError) as e:
            message = f"Unable to extract {file_name}: {e}"
            self.errors.append(message)
            if self.diagnostics is not None:
                self.diagnostics.report(
                    DiagnosticCategory.ATTACHMENT_ERROR,
                    message,
                    source_file=self.source_file,
                    record_kind=RecordKind.MMS.value,
                    record_index=message_index,
                    field_name=f"parts[{part_index}]",
                    raw_value=part.content_type,
                )
            else:
                self.logger.warning(message)
            return
        self.parts_written += 1
