"""
Ambient Utils
=============

Classes:
- FrameArena: slot arena holding frame reference counts and disposed flags
"""

from .arena import FrameArena

__all__ = ["FrameArena"]
