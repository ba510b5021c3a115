"""
Sequence allocation for numeric document ids.
"""

from .allocator import Counter, SequenceAllocator

__all__ = [
    "Counter",
    "SequenceAllocator",
]
