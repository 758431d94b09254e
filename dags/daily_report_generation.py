"""
Daily Report Generation DAG

Refreshes the district_stats counts from the units table, then
generates the daily risk summary report for every admin and manager
profile.

Schedule: Daily at 6:00 AM
"""
from datetime import datetime, timedelta
from airflow import DAG
from airflow.operators.python import PythonOperator

from config.settings import settings
from src.gridrisk.analysis import refresh_district_stats
from src.gridrisk.db import get_db_session, health_check
from src.gridrisk.llm import TextGenerationClient
from src.gridrisk.notifications import EmailSender, send_slack_notification
from src.gridrisk.reports import ReportService
from src.gridrisk.storage import LocalBlobStore
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

# DAG default arguments
default_args = {
    'owner': 'gridrisk',
    'depends_on_past': False,
    'email_on_failure': False,
    'email_on_retry': False,
    'retries': 1,
    'retry_delay': timedelta(minutes=5),
    'execution_timeout': timedelta(hours=1),
}


def check_database(**context):
    """
    Fail fast when the database is unreachable.
    """
    with get_db_session() as session:
        if not health_check(session):
            raise RuntimeError("Database health check failed")
    return True


def refresh_districts(**context):
    """
    Recompute per-district counts so reports see current totals.
    """
    with get_db_session() as session:
        result = refresh_district_stats(session)

    context['task_instance'].xcom_push(key='district_refresh', value=result)
    return result


def generate_daily_reports(**context):
    """
    Generate daily summaries.

    Returns:
        Counts of generated and failed reports
    """
    text_client = TextGenerationClient() if settings.llm_api_key else None

    with get_db_session() as session:
        service = ReportService(
            session,
            text_client=text_client,
            email_sender=EmailSender(),
            blob_store=LocalBlobStore(),
        )
        result = service.schedule_daily_reports()

    context['task_instance'].xcom_push(key='report_counts', value=result)
    return result


def notify_summary(**context):
    """
    Post report generation counts to Slack.
    """
    ti = context['task_instance']
    counts = ti.xcom_pull(task_ids='generate_daily_reports', key='report_counts') or {}

    message = "\n".join([
        "*Daily Report Generation*",
        f"Profiles: {counts.get('profiles', 0)}",
        f"Generated: {counts.get('generated', 0)}",
        f"Failed: {counts.get('failed', 0)}",
    ])
    sent = send_slack_notification(message)

    logger.info("daily_report_generation_summary", slack_sent=sent, **counts)
    return {'sent': sent, **counts}


# Define the DAG
with DAG(
    'daily_report_generation',
    default_args=default_args,
    description='Generate daily risk summary reports for managers',
    schedule='0 6 * * *',
    start_date=datetime(2024, 1, 1),
    catchup=False,
    tags=['reports', 'daily'],
) as dag:

    check_db_task = PythonOperator(
        task_id='check_database',
        python_callable=check_database,
    )

    refresh_task = PythonOperator(
        task_id='refresh_district_stats',
        python_callable=refresh_districts,
    )

    generate_task = PythonOperator(
        task_id='generate_daily_reports',
        python_callable=generate_daily_reports,
    )

    notify_task = PythonOperator(
        task_id='notify_summary',
        python_callable=notify_summary,
    )

    check_db_task >> refresh_task >> generate_task >> notify_task
