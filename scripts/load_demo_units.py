"""
Load Demo Units into Database

Seeds a small demonstration data set: units across five districts with
risk drivers, alert history, district statistics and a demo admin profile.
Re-running updates existing units in place (matched by URN).
"""
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict

# Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session

from src.gridrisk.analysis import district_counts
from src.gridrisk.db import (
    AlertHistory,
    DistrictStatRepository,
    ProfileRepository,
    ShapDriver,
    UnitRepository,
    create_all_tables,
    get_db_session,
    get_engine,
)
from src.gridrisk.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

DEMO_UNITS = [
    {
        "urn": "TN001234567",
        "name": "Chennai Commercial Complex",
        "district": "Chennai",
        "service_no": "CC001234567",
        "risk_score": 85.5,
        "tier": "RED",
        "kwh_consumption": [1250, 1380, 1420, 1500, 1650, 1750],
        "arrears": 45000.0,
        "disconnect_flag": False,
        "peer_percentile": 15.0,
    },
    {
        "urn": "TN002345678",
        "name": "Coimbatore Textile Mill",
        "district": "Coimbatore",
        "service_no": "CB002345678",
        "risk_score": 72.3,
        "tier": "AMBER",
        "kwh_consumption": [2800, 2900, 2750, 2850, 2950, 3100],
        "arrears": 28000.0,
        "disconnect_flag": False,
        "peer_percentile": 35.0,
    },
    {
        "urn": "TN003456789",
        "name": "Madurai Residential Society",
        "district": "Madurai",
        "service_no": "MD003456789",
        "risk_score": 25.8,
        "tier": "GREEN",
        "kwh_consumption": [450, 480, 420, 510, 490, 520],
        "arrears": 2500.0,
        "disconnect_flag": False,
        "peer_percentile": 78.0,
    },
    {
        "urn": "TN004567890",
        "name": "Salem Manufacturing Unit",
        "district": "Salem",
        "service_no": "SL004567890",
        "risk_score": 91.2,
        "tier": "RED",
        "kwh_consumption": [3200, 3400, 3600, 3800, 4000, 4200],
        "arrears": 125000.0,
        "disconnect_flag": True,
        "peer_percentile": 8.0,
    },
    {
        "urn": "TN005678901",
        "name": "Trichy IT Campus",
        "district": "Trichy",
        "service_no": "TR005678901",
        "risk_score": 45.6,
        "tier": "AMBER",
        "kwh_consumption": [1800, 1750, 1900, 1850, 1950, 2000],
        "arrears": 12000.0,
        "disconnect_flag": False,
        "peer_percentile": 55.0,
    },
]

DEMO_DRIVERS = [
    ("Payment History", 0.35, "3 months overdue"),
    ("Consumption Pattern", 0.28, "Irregular usage"),
    ("Arrears Amount", 0.25, "45,000"),
    ("Peer Comparison", 0.12, "Bottom 15%"),
]

DEMO_ALERTS = [
    (date(2023, 12, 15), "Arrears Alert", "RED"),
    (date(2023, 12, 22), "Irregular Pattern", "AMBER"),
    (date(2024, 1, 8), "High Consumption", "AMBER"),
    (date(2024, 1, 15), "Payment Overdue", "RED"),
]

DEMO_SLA_COMPLIANCE = {
    "Chennai": 88.5,
    "Coimbatore": 92.0,
    "Madurai": 96.4,
    "Salem": 81.7,
    "Trichy": 94.1,
}

# Units that get drivers and alerts
DETAILED_UNITS = 2


def load_demo_data(session: Session) -> Dict[str, int]:
    """
    Insert or update the demo data set.

    Args:
        session: Database session

    Returns:
        Counts of inserted and updated rows
    """
    unit_repo = UnitRepository()
    district_repo = DistrictStatRepository()
    profile_repo = ProfileRepository()
    now = datetime.now(timezone.utc)
    stats = {"units_inserted": 0, "units_updated": 0, "drivers": 0, "alerts": 0, "districts": 0}

    for index, record in enumerate(DEMO_UNITS):
        unit = unit_repo.get_by_urn(session, record["urn"])
        if unit is None:
            unit = unit_repo.create(session, last_updated=now, **record)
            stats["units_inserted"] += 1
        else:
            unit_repo.update(session, unit.id, last_updated=now, **record)
            stats["units_updated"] += 1

        if index < DETAILED_UNITS:
            unit.shap_drivers = [
                ShapDriver(feature=feature, impact=impact, value=value, position=position)
                for position, (feature, impact, value) in enumerate(DEMO_DRIVERS)
            ]
            unit.alert_history = [
                AlertHistory(alert_date=alert_date, type=alert_type, severity=severity, message=f"{alert_type} for {unit.name}")
                for alert_date, alert_type, severity in DEMO_ALERTS
            ]
            stats["drivers"] += len(DEMO_DRIVERS)
            stats["alerts"] += len(DEMO_ALERTS)
        session.flush()

    counts = district_counts([(u["district"], u["tier"], u["risk_score"]) for u in DEMO_UNITS])
    district_repo.replace_counts(session, counts)
    existing = {d.name: d for d in district_repo.get_all(session)}
    for name, compliance in DEMO_SLA_COMPLIANCE.items():
        if name in existing:
            existing[name].sla_compliance = compliance
        else:
            district_repo.create(session, name=name, sla_compliance=compliance)
        stats["districts"] += 1

    if profile_repo.get_by_id(session, "demo-admin") is None:
        profile_repo.create(
            session,
            id="demo-admin",
            display_name="Demo Administrator",
            email="admin@gridrisk.local",
            role="admin",
            district_access=[],
            email_notifications=True,
        )

    logger.info("demo_data_loaded", **stats)
    return stats


def main():
    """Create tables if needed and load the demo data."""
    setup_logging()
    create_all_tables(get_engine())

    with get_db_session() as session:
        stats = load_demo_data(session)

    print("\n" + "=" * 60)
    print("DEMO DATA LOADING COMPLETE")
    print("=" * 60)
    for key, value in stats.items():
        print(f"  {key.replace('_', ' ').title()}: {value}")
    print("=" * 60)


if __name__ == "__main__":
    main()
