"""Pydantic models for the JSON documents exchanged with Millennium."""
