"""Embedded datastore: ORM models and engine/session management."""
