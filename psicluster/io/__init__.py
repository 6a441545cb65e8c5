"""
Input file parsing.
"""

from .parser import InputParser

__all__ = ["InputParser"]
