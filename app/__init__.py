"""Visitor Management API Application."""
