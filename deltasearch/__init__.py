"""
deltasearch: delta indexing bridge between SQLAlchemy records and a
segment-based full-text search index.
"""

__version__ = "0.1.0"
