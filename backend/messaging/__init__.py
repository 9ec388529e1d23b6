"""Folio real-time messaging backend."""
