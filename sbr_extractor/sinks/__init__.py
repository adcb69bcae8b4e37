"""
Record sinks and the fan-out chain that feeds them.
"""

from .sink_chain import SinkChain
from .flat_file_sink import FlatFileSink, TsvFile
from .attachment_sink import AttachmentSink, derive_attachment_name, is_binary_part

__all__ = [
    'SinkChain',
    'FlatFileSink',
    'TsvFile',
    'AttachmentSink',
    'derive_attachment_name',
    'is_binary_part',
]
