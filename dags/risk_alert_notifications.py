"""
Risk Alert Notifications DAG

Raises risk alert notifications for critical RED tier units and posts a
summary to Slack.

Schedule: Hourly
"""
from datetime import datetime, timedelta
from airflow import DAG
from airflow.operators.python import PythonOperator

from src.gridrisk.db import get_db_session
from src.gridrisk.notifications import EmailSender, NotificationService, send_slack_notification
from src.gridrisk.notifications.dispatch import format_risk_alert_summary
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)

# DAG default arguments
default_args = {
    'owner': 'gridrisk',
    'depends_on_past': False,
    'email_on_failure': False,
    'email_on_retry': False,
    'retries': 2,
    'retry_delay': timedelta(minutes=3),
    'execution_timeout': timedelta(minutes=20),
}


def scan_risk_alerts(**context):
    """
    Create risk alert notifications for critical units.

    Returns:
        Number of alerts raised
    """
    logger.info("risk_alert_scan_started")

    with get_db_session() as session:
        service = NotificationService(session, email_sender=EmailSender())
        result = service.send_risk_alerts()

    context['task_instance'].xcom_push(key='alerted_units', value=result['alerted_units'])
    context['task_instance'].xcom_push(key='scan_result', value={
        'alerts_sent': result['alerts_sent'],
        'units_checked': result['units_checked'],
        'duplicates_skipped': result['duplicates_skipped'],
    })

    return result['alerts_sent']


def send_slack_summary(**context):
    """
    Post the alerted units to Slack.
    """
    ti = context['task_instance']
    alerted_units = ti.xcom_pull(task_ids='scan_risk_alerts', key='alerted_units')

    if not alerted_units:
        logger.info("no_new_risk_alerts_to_post")
        return {'sent': False, 'reason': 'no_new_alerts'}

    success = send_slack_notification(format_risk_alert_summary(alerted_units))

    if success:
        return {'sent': True, 'count': len(alerted_units)}
    logger.warning("risk_alert_slack_summary_failed")
    return {'sent': False, 'reason': 'send_failed'}


def log_alert_summary(**context):
    """
    Log summary of the alert scan.
    """
    ti = context['task_instance']
    scan_result = ti.xcom_pull(task_ids='scan_risk_alerts', key='scan_result') or {}
    slack_result = ti.xcom_pull(task_ids='send_slack_summary') or {}

    summary = {
        'alerts_sent': scan_result.get('alerts_sent', 0),
        'units_checked': scan_result.get('units_checked', 0),
        'duplicates_skipped': scan_result.get('duplicates_skipped', 0),
        'slack_sent': slack_result.get('sent', False),
    }
    logger.info("risk_alert_notification_summary", **summary)
    return summary


# Define the DAG
with DAG(
    'risk_alert_notifications',
    default_args=default_args,
    description='Raise risk alert notifications for critical units',
    schedule='0 * * * *',
    start_date=datetime(2024, 1, 1),
    catchup=False,
    tags=['alerts', 'notifications', 'risk'],
) as dag:

    scan_task = PythonOperator(
        task_id='scan_risk_alerts',
        python_callable=scan_risk_alerts,
    )

    slack_task = PythonOperator(
        task_id='send_slack_summary',
        python_callable=send_slack_summary,
    )

    log_summary_task = PythonOperator(
        task_id='log_summary',
        python_callable=log_alert_summary,
    )

    scan_task >> slack_task >> log_summary_task
