"""Presentation layer for polysim.

Public API
----------
- :class:`ConsoleDashboard` -- Rich-based (or plain-text) console output
"""

from polysim.presentation.console import ConsoleDashboard

__all__ = ["ConsoleDashboard"]
