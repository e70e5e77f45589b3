"""Request models for API endpoints."""
