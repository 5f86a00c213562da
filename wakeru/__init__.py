"""Per-language full-text indexes with BM25 search and Japanese part-of-speech filtering."""

__version__ = "0.1.1"