"""Feedback input: file reading, blob splitting and body cleaning.

This package turns raw input into NormalizedItem records:
- Body cleaning pipeline for fetched mail (HTML, quoted replies, signatures)
- Blob splitting and header extraction for free-text files
- File reading and validation
"""

from resolver.ingest.cleaning import BodyCleaner, clean_body
from resolver.ingest.files import FileSource
from resolver.ingest.normalizer import ItemNormalizer

__all__ = ["BodyCleaner", "FileSource", "ItemNormalizer", "clean_body"]
