"""Core authentication, authorization and infrastructure helpers."""
