"""
District Stats Refresh

Recomputes the per-district counts and mean score in district_stats from
the current units table. SLA compliance is supplied externally and kept as
is; districts seen for the first time get no compliance figure.
"""
from typing import Any, Dict, List, Sequence, Tuple

import pandas as pd
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.gridrisk.db.models import Unit
from src.gridrisk.db.repository import DistrictStatRepository
from src.gridrisk.exceptions import DataFetchError
from src.gridrisk.models.risk import RiskTier
from src.gridrisk.utils.logger import get_logger

logger = get_logger(__name__)


def district_counts(rows: Sequence[Tuple[str, str, float]]) -> List[Dict[str, Any]]:
    """
    Per-district totals from (district, tier, risk_score) rows.

    Returns one dict per district, sorted by name.
    """
    if not rows:
        return []

    df = pd.DataFrame.from_records(rows, columns=["district", "tier", "risk_score"])
    df["tier"] = df["tier"].str.upper()
    tiers = pd.crosstab(df["district"], df["tier"]).reindex(
        columns=[tier.value for tier in RiskTier], fill_value=0
    )
    scores = df.groupby("district")["risk_score"].agg(["count", "mean"])

    counts = []
    for name in sorted(scores.index):
        counts.append({
            "name": name,
            "total_units": int(scores.at[name, "count"]),
            "red_count": int(tiers.at[name, RiskTier.RED.value]),
            "amber_count": int(tiers.at[name, RiskTier.AMBER.value]),
            "green_count": int(tiers.at[name, RiskTier.GREEN.value]),
            "avg_risk_score": round(float(scores.at[name, "mean"]), 2),
        })
    return counts


def refresh_district_stats(session: Session) -> Dict[str, int]:
    """
    Rewrite district_stats counts from units and commit.

    Returns:
        Numbers of created, updated and zeroed district rows

    Raises:
        DataFetchError: Units could not be read or stats written
    """
    try:
        rows = session.execute(select(Unit.district, Unit.tier, Unit.risk_score)).all()
        counts = district_counts([tuple(row) for row in rows])
        result = DistrictStatRepository().replace_counts(session, counts)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise DataFetchError(f"Failed to refresh district stats: {e}") from e

    logger.info("district_stats_refreshed", districts=len(counts), **result)
    return result
