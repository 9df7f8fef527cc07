"""
Text Module - Vox

Turns raw selected text into speakable chunks.

Main Components:
- clean: Strips URLs, markdown, HTML, code, footnotes, emails, paths and list markers
- segment: Splits cleaned text into ordered sentence chunks
- count_words: Word count used for the ETA estimate

Example Usage:
    from vox.text import clean, segment

    chunks = segment(clean("**Hello** world. See https://example.com for more!"))
"""

from vox.text.sanitizer import clean
from vox.text.segmenter import segment, count_words

__all__ = [
    "clean",
    "segment",
    "count_words",
]
