"""Adapters around host OS facilities."""
