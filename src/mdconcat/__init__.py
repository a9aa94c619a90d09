"""
md-concat - concatenate source files into a single Markdown document.

This package walks one or more directory trees, selects files by extension
while honouring nested ``.gitignore`` files, and writes every selected file
into one Markdown document with a heading and fenced code block per file.
The result is a quick textual snapshot of a codebase for LLM ingestion.
"""

__version__ = "0.2.0"
__author__ = "md-concat Team"
