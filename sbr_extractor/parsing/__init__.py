"""
Backup stream access and decoding.
"""

from .backup_source import detect_backup_kind, open_backup
from .entity_repair import EntityRepairStream, repair_character_references
from .stream_decoder import (
    BackupDecoder, MessageDecoder, CallDecoder, RecordCollector, RecordCollection,
    collect_messages, collect_calls, create_decoder
)

__all__ = [
    'detect_backup_kind',
    'open_backup',
    'EntityRepairStream',
    'repair_character_references',
    'BackupDecoder',
    'MessageDecoder',
    'CallDecoder',
    'RecordCollector',
    'RecordCollection',
    'collect_messages',
    'collect_calls',
    'create_decoder',
]
