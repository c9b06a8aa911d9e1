"""Trailclub billing HTTP API."""
