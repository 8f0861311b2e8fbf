"""
HTTP layer for the classification service.
"""
