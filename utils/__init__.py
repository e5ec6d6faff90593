"""Shared helpers for the import API."""
