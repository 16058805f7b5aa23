"""Entitlement schema migrations."""
