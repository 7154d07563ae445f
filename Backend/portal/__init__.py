"""Membership portal backend."""
