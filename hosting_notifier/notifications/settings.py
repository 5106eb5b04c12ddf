"""Cached access to company branding and mail settings.

Both live in the dashboard database and change rarely, so they are read at
most once per TTL. The dashboard (or tests) call :meth:`SettingsAccessor.invalidate`
after editing them to make the next read hit the database.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hosting_notifier.config.environment import EnvironmentConfig
from hosting_notifier.domain.models import CompanyInfo
from hosting_notifier.logging import get_logger
from hosting_notifier.persistence import SettingsRepository, get_session

logger = get_logger(__name__, component="settings")

MAIL_SETTINGS_KEY = "mail-settings"


class MailSettings(BaseModel):
    """SMTP parameters. Field aliases match the keys the dashboard stores."""

    host: str
    port: int = Field(..., ge=1, le=65535)
    secure: bool = False
    user: Optional[str] = None
    password: Optional[str] = None
    from_email: Optional[str] = Field(None, alias="fromEmail")
    from_name: Optional[str] = Field(None, alias="fromName")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_environment(cls, env_config: EnvironmentConfig) -> "MailSettings":
        return cls(
            host=env_config.smtp_host,
            port=env_config.smtp_port,
            secure=env_config.smtp_port == 465,
            user=env_config.smtp_user,
            password=env_config.smtp_pass,
            from_email=env_config.smtp_from,
            from_name=env_config.smtp_sender_name,
        )

    def sender_address(self) -> str:
        """``Name <address>``; the address falls back to the user, then noreply@host."""
        address = self.from_email or self.user or f"noreply@{self.host}"
        if self.from_name:
            return f"{self.from_name} <{address}>"
        return address


class SettingsAccessor:
    """TTL cache in front of SettingsRepository.

    Args:
        env_config: Source of the default SMTP settings
        ttl_seconds: How long a loaded value is reused
        clock: Monotonic time source (tests pass a fake)
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.env_config = env_config
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[float, Any]] = {}

    def invalidate(self) -> None:
        """Forget everything cached."""
        with self._lock:
            self._cache.clear()
        logger.debug("Settings cache invalidated", extra={"event": "settings.invalidated"})

    def _cached(self, key: str, loader: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._cache.get(key)
            now = self.clock()
            if entry is not None and now - entry[0] < self.ttl_seconds:
                return entry[1]

            value = loader()
            self._cache[key] = (now, value)
            return value

    def company_info(self) -> CompanyInfo:
        """Stored company info, or the defaults when none is stored."""
        return self._cached("company", self._load_company_info)

    def mail_settings(self) -> MailSettings:
        """Environment SMTP settings overlaid with the stored ``mail-settings`` row."""
        return self._cached("mail", self._load_mail_settings)

    def _load_company_info(self) -> CompanyInfo:
        with get_session() as session:
            company = SettingsRepository(session).get_company_info()
        return company or CompanyInfo()

    def _load_mail_settings(self) -> MailSettings:
        defaults = MailSettings.from_environment(self.env_config)

        with get_session() as session:
            stored = SettingsRepository(session).get_setting(MAIL_SETTINGS_KEY)

        if not isinstance(stored, dict) or not stored:
            return defaults

        merged = defaults.model_dump(by_alias=True)
        merged.update({k: v for k, v in stored.items() if v not in (None, "")})

        try:
            return MailSettings.model_validate(merged)
        except ValidationError as e:
            logger.warning(
                f"Stored mail settings are invalid, using environment SMTP settings: {e}",
                extra={"event": "settings.mail.invalid"},
            )
            return defaults
