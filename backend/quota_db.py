"""
Quota Database - API key lookup, monthly request quota, and upload records
Keys and counters live in a small JSON file so they survive restarts.
"""

import json
import time
import asyncio
import secrets
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_LIMIT = 100


def current_period() -> str:
    """Quota window identifier (calendar month)."""
    return time.strftime("%Y-%m")


class QuotaDatabase:
    """
    Manages API keys and their monthly request allowance.

    Each key record includes:
    - user_id it belongs to
    - monthly_limit (requests per calendar month)
    - used count and the period it applies to
    """

    def __init__(self, db_path: Optional[str] = None, default_monthly_limit: int = DEFAULT_MONTHLY_LIMIT):
        """Initialize and load keys from db_path (in-memory only when None)."""
        self.db_path = Path(db_path) if db_path else None
        self.default_monthly_limit = default_monthly_limit
        self.api_keys: dict[str, dict] = {}
        self.uploads: list[dict] = []
        self._lock = asyncio.Lock()

        self._load_database()

    def _load_database(self) -> None:
        """Load keys and upload records from the JSON file if it exists"""
        if not self.db_path or not self.db_path.exists():
            return
        try:
            with open(self.db_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading {self.db_path}: {e}")
            return

        self.api_keys = dict(data.get("api_keys", {}))
        self.uploads = list(data.get("uploads", []))
        logger.info(f"Loaded {len(self.api_keys)} API key(s) from {self.db_path}")

    def _save(self) -> None:
        if not self.db_path:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.db_path.with_suffix(self.db_path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({"api_keys": self.api_keys, "uploads": self.uploads}, f, indent=2)
        tmp_path.replace(self.db_path)

    def add_key(self, secret: str, user_id: str, monthly_limit: Optional[int] = None) -> bool:
        """Register an API key; existing keys keep their usage counters."""
        if not secret or not user_id:
            return False
        record = self.api_keys.get(secret)
        if record is None:
            self.api_keys[secret] = {
                "user_id": user_id,
                "monthly_limit": monthly_limit if monthly_limit is not None else self.default_monthly_limit,
                "used": 0,
                "period": current_period(),
            }
        else:
            record["user_id"] = user_id
            if monthly_limit is not None:
                record["monthly_limit"] = monthly_limit
        return True

    def lookup_user(self, secret: Optional[str]) -> Optional[str]:
        """Return the user owning an API key, or None for unknown keys."""
        if not secret:
            return None
        for known, record in self.api_keys.items():
            if secrets.compare_digest(known.encode(), secret.encode()):
                return record["user_id"]
        return None

    def _records_for(self, user_id: str) -> list[dict]:
        return [r for r in self.api_keys.values() if r.get("user_id") == user_id]

    async def check_and_update_quota(self, user_id: str, count_request: bool = True) -> bool:
        """
        Check whether the user may make another request this month.
        Consumes one unit when count_request is True and quota remains.
        """
        async with self._lock:
            records = self._records_for(user_id)
            if not records:
                return False

            record = records[0]
            period = current_period()
            if record.get("period") != period:
                record["used"] = 0
                record["period"] = period

            limit = record.get("monthly_limit", self.default_monthly_limit)
            if record.get("used", 0) >= limit:
                logger.warning(f"Monthly quota exhausted for user {user_id} ({limit})")
                return False

            if count_request:
                record["used"] = record.get("used", 0) + 1
                self._save()
            return True

    async def record_upload(self, user_id: str, analyzed: bool = True) -> dict:
        """Store a record of an analyzed upload."""
        async with self._lock:
            upload = {
                "key": f"upload-{int(time.time() * 1000)}",
                "user_id": user_id,
                "analyzed": analyzed,
            }
            self.uploads.append(upload)
            self._save()
            return upload

    def get_usage(self, user_id: str) -> dict:
        """Current period usage for a user"""
        records = self._records_for(user_id)
        if not records:
            return {"used": 0, "limit": 0, "period": current_period()}
        record = records[0]
        used = record.get("used", 0) if record.get("period") == current_period() else 0
        return {
            "used": used,
            "limit": record.get("monthly_limit", self.default_monthly_limit),
            "period": current_period(),
        }
