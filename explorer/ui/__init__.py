"""
UI components and layout for the question explorer.
"""

from .layout import create_layout

__all__ = ['create_layout']
