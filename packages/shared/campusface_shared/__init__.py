"""Pydantic schemas shared between the CampusFace server and its clients."""
