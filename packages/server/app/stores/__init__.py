"""Persistence functions, one entity per call."""
