#!/usr/bin/env python3
"""
Title Formatter - Turns file names into readable video titles
"""
import re

_SEPARATORS = re.compile(r"[-_.]+")
_WHITESPACE = re.compile(r"\s+")
_WORD_START = re.compile(r"\b\w")


def format_title(filename: str) -> str:
    """
    Format a file name (without extension) as a title.
    "my_video-file.01" -> "My Video File 01"
    """
    title = _SEPARATORS.sub(" ", filename)
    title = _WHITESPACE.sub(" ", title)
    title = _WORD_START.sub(lambda m: m.group(0).upper(), title)
    return title.strip()
