"""
Shared utilities and infrastructure components.
"""
