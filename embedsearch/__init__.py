"""
EmbedSearch — embedding storage, similarity search and retrieval-augmented
answers behind a small HTTP API.
"""

__version__ = "0.1.0"
