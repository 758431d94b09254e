"""
FastAPI REST API for GridRisk Monitor

Provides REST endpoints for the dashboard:
- Report generation, retrieval and export
- Unit search, filtering and suggestions
- Notifications and risk alert scans
- File storage
"""
