"""
Key/value settings access
"""
import json
import logging
from typing import Any, Dict, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cbgwatch.config import get_settings
from cbgwatch.models import Setting

logger = logging.getLogger(__name__)

CHECK_INTERVAL_KEY = "check_interval_minutes"


def parse_interval(value: Optional[str], default: int) -> int:
    """Positive integer minutes, anything else falls back to the default."""
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def coerce_setting(value: str) -> Any:
    """Turn stored strings back into bools and ints for API consumers."""
    if value == "true":
        return True
    if value == "false":
        return False
    if value.isdigit():
        return int(value)
    return value


class SettingsService:
    """Reads and writes rows of the settings table"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_value(self, key: str) -> Optional[str]:
        result = await self.db.execute(select(Setting.value).where(Setting.key == key))
        return result.scalar_one_or_none()

    async def get_check_interval(self) -> int:
        """
        Configured scan interval in minutes.

        Missing, non-numeric or non-positive values, and read failures,
        all resolve to the default interval.
        """
        default = get_settings().default_check_interval_minutes
        try:
            value = await self.get_value(CHECK_INTERVAL_KEY)
        except SQLAlchemyError as e:
            logger.warning(f"Could not read {CHECK_INTERVAL_KEY}, using default: {e}")
            return default
        return parse_interval(value, default)

    async def get_all(self) -> Dict[str, Any]:
        result = await self.db.execute(select(Setting))
        return {row.key: coerce_setting(row.value) for row in result.scalars().all()}

    async def update(self, updates: Dict[str, Any]) -> None:
        """Upsert several settings in one transaction."""
        try:
            for key, value in updates.items():
                if isinstance(value, (dict, list)):
                    string_value = json.dumps(value, ensure_ascii=False)
                elif isinstance(value, bool):
                    string_value = "true" if value else "false"
                else:
                    string_value = str(value)

                existing = await self.db.get(Setting, key)
                if existing:
                    existing.value = string_value
                else:
                    self.db.add(Setting(key=key, value=string_value))

            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
