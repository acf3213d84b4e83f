"""
Background services.
"""
