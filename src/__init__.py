"""
GridRisk Monitor - Core Package

Risk reporting for utility consumer accounts: data access, report
generation, notifications and the HTTP API.
"""

__version__ = "0.1.0"
