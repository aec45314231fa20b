"""SQLAlchemy models package.

from collector_backup.models import Backup, Settings
"""

from .backups import Backup  # noqa: F401
from .settings import Settings  # noqa: F401
