"""UID block and SELinux MCS label arithmetic."""

from nsalloc.security.bitmap import BitVector
from nsalloc.security.mcs import Label, LabelRange, label_allocation
from nsalloc.security.uid import Block, GlobalRange
from nsalloc.security.uidallocator import BlockAllocator

__all__ = [
    "BitVector",
    "Block",
    "BlockAllocator",
    "GlobalRange",
    "Label",
    "LabelRange",
    "label_allocation",
]
