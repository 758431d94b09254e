"""
Airflow DAGs Package

Contains all DAG definitions for the GridRisk Monitor scheduled jobs.

DAGs:
- risk_alert_notifications: Raise critical unit risk alerts (hourly)
- daily_report_generation: Daily summary reports for managers (6:00 AM)
"""
