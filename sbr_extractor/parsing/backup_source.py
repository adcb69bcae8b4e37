"""
Backup file access: kind detection and zip-aware opening.

The exporting app names its documents ``sms-<timestamp>.xml`` and
``calls-<timestamp>.xml`` and can wrap either in a zip archive holding that
single document.
"""

import logging
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from ..exceptions import StructuralError
from ..models import BackupKind

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ('.xml', '.zip')
KIND_PREFIXES = (
    ('sms', BackupKind.MESSAGES),
    ('calls', BackupKind.CALLS),
)


def detect_backup_kind(path: Union[str, Path]) -> BackupKind:
    """
    Determine the backup kind from a file name.

    Args:
        path: Backup file path

    Returns:
        BackupKind.MESSAGES for ``sms*`` files, BackupKind.CALLS for ``calls*`` files

    Raises:
        StructuralError: If the extension or name prefix is not recognized
    """
    path = Path(path)
    name = path.name.lower()
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise StructuralError(
            f"Unexpected file extension '{path.suffix}'; expected one of {', '.join(SUPPORTED_EXTENSIONS)}",
            source_file=str(path)
        )
    for prefix, kind in KIND_PREFIXES:
        if name.startswith(prefix):
            return kind
    raise StructuralError(
        f"Unexpected file name '{path.name}'; backup files start with 'sms' or 'calls'",
        source_file=str(path)
    )


@contextmanager
def open_backup(path: Union[str, Path]) -> Iterator[BinaryIO]:
    """
    Open a backup file as a binary stream, unwrapping a single-member zip.

    The stream is closed when the context exits, on success and on failure.

    Args:
        path: Path to a ``.xml`` document or a ``.zip`` holding exactly one file

    Yields:
        Readable binary stream positioned at the start of the XML document

    Raises:
        StructuralError: If the file cannot be opened, or the archive is
                         corrupt or does not contain exactly one file
    """
    path = Path(path)
    if path.suffix.lower() == '.zip':
        try:
            archive = zipfile.ZipFile(path)
        except (OSError, zipfile.BadZipFile) as e:
            raise StructuralError(f"Unable to open zip archive {path}: {e}", source_file=str(path))
        try:
            members = [info for info in archive.infolist() if not info.is_dir()]
            if len(members) != 1:
                raise StructuralError(
                    f"Zip archive {path.name} must contain exactly one file, found {len(members)}",
                    source_file=str(path)
                )
            logger.debug(f"Reading {members[0].filename} from {path.name}")
            with archive.open(members[0]) as stream:
                yield stream
        finally:
            archive.close()
        return

    try:
        stream = open(path, 'rb')
    except OSError as e:
        raise StructuralError(f"Unable to open {path}: {e}", source_file=str(path))
    with stream:
        yield stream
