"""Pydantic schemas shared across trailclub services."""
