"""
GridRisk Monitor - Core Package

Risk monitoring back end for an electricity utility: unit risk tiers,
arrears, search, report generation, notifications and file storage.
"""

__version__ = "0.1.0"
