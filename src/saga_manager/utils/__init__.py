"""Utility helpers."""

from .locks import EntityLockRegistry

__all__ = ["EntityLockRegistry"]
