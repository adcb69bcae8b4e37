"""
Element-to-record mapping for the backup extraction system.
"""

from .record_mapper import RecordMapper

__all__ = ['RecordMapper']
