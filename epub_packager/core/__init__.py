"""Core packaging logic: resources, sections, navigation, and the archive assembler.

RULES:
- No HTTP or filesystem access outside the media grabber and storage backends
- Nothing in core takes a lock; the Epub facade serializes access
"""
