"""
Preprocessing stages that run before inference.
"""

from .letterbox import LetterboxInfo, compute_letterbox, letterbox, DEFAULT_INPUT_SIZE, PAD_VALUE

__all__ = [
    "LetterboxInfo",
    "compute_letterbox",
    "letterbox",
    "DEFAULT_INPUT_SIZE",
    "PAD_VALUE",
]
