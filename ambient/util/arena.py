"""
Ambient Frame Arena - Slot Storage for Frame Reference Counts
=============================================================

This module provides an arena allocator backing the reference counts of context
frames. Frames are lightweight handles holding a slot index; the counters and the
disposed flags live in the arena.

Key Features:
- Contiguous unsigned counter array indexed by slot
- Bitset-based disposed tracking (64 frames per word)
- Free list for slot reuse
- Doubling growth up to a fixed maximum

Invariants:
- A counter never goes below zero
- The disposed bit of a slot can be set only once until the slot is freed
- Only slots whose counter is zero are returned to the free list
"""

import array
from typing import List


class FrameArena:
    """
    Arena allocator for frame reference counts.

    All counters live in a single contiguous block with:
    - A parallel array of 64-bit unsigned reference counts
    - A bitset of disposed flags
    - A free list of reusable slots
    """

    def __init__(self, initial_capacity: int = 256, max_frames: int = 1 << 20):
        """
        Initialize arena with pre-allocated storage.

        Args:
            initial_capacity: Number of slots allocated up front
            max_frames: Hard upper bound on simultaneously allocated slots
        """
        if initial_capacity <= 0:
            raise ValueError("initial_capacity must be positive")
        if max_frames < initial_capacity:
            raise ValueError("max_frames must be at least initial_capacity")

        self.capacity = initial_capacity
        self.max_frames = max_frames
        self.count = 0

        self.ref_counts = array.array("Q", [0] * initial_capacity)
        self.disposed_bits = array.array("Q", [0] * ((initial_capacity + 63) // 64))

        self.free_list: List[int] = []

    @property
    def live_count(self) -> int:
        """Number of slots currently allocated."""
        return self.count - len(self.free_list)

    def allocate(self) -> int:
        """
        Allocate a slot holding a single reference.

        Returns:
            Slot index

        Raises:
            RuntimeError: If the arena is exhausted
        """
        if self.free_list:
            slot = self.free_list.pop()
        else:
            if self.count >= self.capacity:
                self._grow()
            slot = self.count
            self.count += 1

        self.ref_counts[slot] = 1
        self._clear_disposed(slot)
        return slot

    def add_ref(self, slot: int) -> int:
        """Add a reference to a slot, returning the new count."""
        self.ref_counts[slot] += 1
        return self.ref_counts[slot]

    def release(self, slot: int) -> int:
        """
        Release a reference from a slot.

        Returns:
            The count before the decrement. Zero means the slot had no
            references left and nothing was changed.
        """
        current = self.ref_counts[slot]
        if current == 0:
            return 0
        self.ref_counts[slot] = current - 1
        return current

    def ref_count(self, slot: int) -> int:
        return self.ref_counts[slot]

    def free(self, slot: int) -> None:
        """Return a fully released slot for reuse."""
        if self.ref_counts[slot] != 0:
            raise RuntimeError(f"Cannot free frame slot {slot} with live references")
        self._clear_disposed(slot)
        self.free_list.append(slot)

    # Bitset operations - O(1)
    def test_and_set_disposed(self, slot: int) -> bool:
        """Set the disposed bit, returning True only if it was clear."""
        word_idx = slot >> 6  # divide by 64
        bit = 1 << (slot & 63)
        if self.disposed_bits[word_idx] & bit:
            return False
        self.disposed_bits[word_idx] |= bit
        return True

    def is_disposed(self, slot: int) -> bool:
        word_idx = slot >> 6
        return bool(self.disposed_bits[word_idx] & (1 << (slot & 63)))

    def _clear_disposed(self, slot: int) -> None:
        word_idx = slot >> 6
        self.disposed_bits[word_idx] &= ~(1 << (slot & 63))

    def _grow(self) -> None:
        if self.capacity >= self.max_frames:
            raise RuntimeError("Frame arena exhausted")

        new_capacity = min(self.capacity * 2, self.max_frames)
        self.ref_counts.extend([0] * (new_capacity - self.capacity))

        words_needed = (new_capacity + 63) // 64
        if words_needed > len(self.disposed_bits):
            self.disposed_bits.extend([0] * (words_needed - len(self.disposed_bits)))

        self.capacity = new_capacity
