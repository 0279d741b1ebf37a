"""
Request orchestration.

Modules:
    ingest — Batch embedding + storage with per-item outcomes
    query  — Query embedding, ranking and optional answer synthesis
"""
