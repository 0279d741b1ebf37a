"""
EmbedSearch Search

Modules:
    embeddings  — Embedding API calls (EmbeddingClient)
    search      — Cosine similarity and top-k ranking
"""
