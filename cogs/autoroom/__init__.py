"""
AutoRoom Package

Gateway subscription for the AutoRoom service: turns discord.py voice events
into transitions for the service to handle.
"""

from .events import AutoRoomEvents

__all__ = ["AutoRoomEvents"]
