"""
Database Package

Database models, connection management, and data persistence layer.
"""
from src.gridrisk.db.base import Base
from src.gridrisk.db.session import (
    SessionLocal,
    create_db_engine,
    get_engine,
    get_db_session,
    health_check,
    close_connections,
    create_all_tables,
    drop_all_tables,
    with_retry,
)
from src.gridrisk.db.models import (
    Unit,
    ShapDriver,
    AlertHistory,
    DistrictStat,
    Report,
    Notification,
    Profile,
    StoredFile,
    AIAnalysis,
    UserActivity,
)
from src.gridrisk.db.repository import (
    BaseRepository,
    UnitRepository,
    AlertHistoryRepository,
    DistrictStatRepository,
    ReportRepository,
    NotificationRepository,
    ProfileRepository,
    StoredFileRepository,
    AIAnalysisRepository,
    UserActivityRepository,
)

__all__ = [
    # Base
    "Base",
    # Session management
    "SessionLocal",
    "create_db_engine",
    "get_engine",
    "get_db_session",
    "health_check",
    "close_connections",
    "create_all_tables",
    "drop_all_tables",
    "with_retry",
    # Models
    "Unit",
    "ShapDriver",
    "AlertHistory",
    "DistrictStat",
    "Report",
    "Notification",
    "Profile",
    "StoredFile",
    "AIAnalysis",
    "UserActivity",
    # Repositories
    "BaseRepository",
    "UnitRepository",
    "AlertHistoryRepository",
    "DistrictStatRepository",
    "ReportRepository",
    "NotificationRepository",
    "ProfileRepository",
    "StoredFileRepository",
    "AIAnalysisRepository",
    "UserActivityRepository",
]
