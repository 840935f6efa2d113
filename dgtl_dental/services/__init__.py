"""Clients for external collaborators and the practice store."""
