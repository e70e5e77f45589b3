"""Caller identity resolution."""
