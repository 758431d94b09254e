"""
Search Module

Typed filter specifications and unit search.
"""
