"""Shared pytest configuration; puts the repository root on sys.path."""
