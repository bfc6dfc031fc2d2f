"""Core utilities and shared helper primitives.

Modules in this package are framework-agnostic where possible and focused on
configuration, validation, request marshaling and small reusable helpers for
plain keyed data.
"""
