"""Catalog storage for surveyed AI tools."""
