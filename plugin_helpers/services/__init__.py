"""Adapters over the media storage backend."""
