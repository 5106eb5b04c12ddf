"""Data access layer (repositories) for the notifier.

Repositories wrap one SQLAlchemy session, return domain models and
translate SQLAlchemy errors into PersistenceError.
"""

import logging
from collections import Counter
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from hosting_notifier.domain.models import (
    CompanyInfo,
    DispatchRecord,
    EntityScope,
    MessageTemplate,
    NotifiableItem,
    NotificationRule,
    RuleClass,
    RuleType,
)

from .exceptions import (
    DataIntegrityError,
    MalformedRecordError,
    PersistenceError,
    RecordNotFoundError,
)
from .schema import (
    AppSettingModel,
    ClientModel,
    CompanyInfoModel,
    DomainModel,
    EmailTemplateModel,
    HostingModel,
    NotificationLogModel,
    NotificationSettingModel,
    _format_datetime,
    build_domain_item,
    build_notifiable_item,
    format_date,
)

logger = logging.getLogger(__name__)


def _rule_types(rule_class: RuleClass) -> List[str]:
    return [rule_type.value for rule_type in RuleType if rule_type.rule_class is rule_class]


class RuleRepository:
    """Repository for notification rules (notification_settings rows)."""

    def __init__(self, session: Session):
        self.session = session

    def list_enabled(self, rule_class: Optional[RuleClass] = None) -> List[NotificationRule]:
        """Return enabled rules, optionally restricted to one class.

        Rows that do not describe a valid rule (a recurring row without a
        frequency, an expiry row without offsets, an unknown type) are logged
        and left out; they never reach the dispatcher.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(NotificationSettingModel).where(
                NotificationSettingModel.enabled.is_(True)
            )
            if rule_class is not None:
                stmt = stmt.where(NotificationSettingModel.type.in_(_rule_types(rule_class)))
            stmt = stmt.order_by(NotificationSettingModel.id)

            models = self.session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing enabled rules: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list rules: {e}") from e

        rules = []
        for model in models:
            try:
                rules.append(model.to_domain())
            except (ValidationError, ValueError) as e:
                logger.warning(
                    f"Skipping malformed notification rule {model.id}: {e}",
                    extra={
                        "event": "rule.malformed",
                        "rule_id": model.id,
                        "rule_type": model.type,
                    },
                )
        return rules

    def get_by_id(self, rule_id: int) -> Optional[NotificationRule]:
        """Return one rule regardless of its enabled flag.

        Raises:
            MalformedRecordError: If the row exists but is not a valid rule
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(NotificationSettingModel, rule_id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving rule {rule_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve rule: {e}") from e

        if model is None:
            return None

        try:
            return model.to_domain()
        except (ValidationError, ValueError) as e:
            raise MalformedRecordError(f"Notification rule {rule_id} is malformed: {e}") from e

    def save(self, rule: NotificationRule) -> NotificationRule:
        """Insert or replace a rule.

        Raises:
            DataIntegrityError: On constraint violations
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.merge(NotificationSettingModel.from_domain(rule))
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error saving rule {rule.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to save rule due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error saving rule {rule.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save rule: {e}") from e

    def update_last_dispatch(self, rule_id: int, timestamp: datetime) -> None:
        """Set the rule's last dispatch instant.

        Raises:
            RecordNotFoundError: If the rule does not exist
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                update(NotificationSettingModel)
                .where(NotificationSettingModel.id == rule_id)
                .values(last_sent=_format_datetime(timestamp))
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Notification rule {rule_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating last dispatch for rule {rule_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update last dispatch: {e}") from e


class HostingRepository:
    """Read access to hosting records joined with their client and domain."""

    def __init__(self, session: Session):
        self.session = session

    def _base_query(self, scope: EntityScope):
        stmt = (
            select(HostingModel, ClientModel, DomainModel)
            .outerjoin(ClientModel, HostingModel.client_id == ClientModel.id)
            .outerjoin(DomainModel, HostingModel.domain_id == DomainModel.id)
        )
        if scope is not EntityScope.ALL:
            stmt = stmt.where(HostingModel.service_type == scope.value)
        return stmt

    def _load(self, stmt) -> List[NotifiableItem]:
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading hosting records: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load hosting records: {e}") from e

        items = []
        for hosting, client, domain in rows:
            try:
                items.append(build_notifiable_item(hosting, client, domain))
            except (ValidationError, ValueError) as e:
                logger.warning(
                    f"Skipping malformed hosting record {hosting.id}: {e}",
                    extra={"event": "hosting.malformed", "item_id": hosting.id},
                )
        return items

    def find_expiring_on(
        self,
        target: date,
        scope: EntityScope = EntityScope.ALL,
    ) -> List[NotifiableItem]:
        """Enabled records whose expiry date is exactly ``target``."""
        stmt = (
            self._base_query(scope)
            .where(HostingModel.expiry_date == format_date(target))
            .where(HostingModel.is_enabled.is_(True))
            .order_by(HostingModel.id)
        )
        return self._load(stmt)

    def find_expiring_between(
        self,
        start: date,
        end: date,
        scope: EntityScope = EntityScope.ALL,
    ) -> List[NotifiableItem]:
        """Enabled records expiring within ``[start, end]`` inclusive."""
        stmt = (
            self._base_query(scope)
            .where(HostingModel.expiry_date >= format_date(start))
            .where(HostingModel.expiry_date <= format_date(end))
            .where(HostingModel.is_enabled.is_(True))
            .order_by(HostingModel.expiry_date, HostingModel.id)
        )
        return self._load(stmt)

    def get_by_id(self, item_id: int) -> Optional[NotifiableItem]:
        """One record by id, enabled or not."""
        items = self._load(self._base_query(EntityScope.ALL).where(HostingModel.id == item_id))
        return items[0] if items else None

    def list_all(self, scope: EntityScope = EntityScope.ALL) -> List[NotifiableItem]:
        """Every enabled record, used for the hosting-list report."""
        stmt = (
            self._base_query(scope)
            .where(HostingModel.is_enabled.is_(True))
            .order_by(HostingModel.id)
        )
        return self._load(stmt)


class DomainRepository:
    """Read access to domain registrations joined with their client."""

    def __init__(self, session: Session):
        self.session = session

    def _base_query(self):
        return select(DomainModel, ClientModel).outerjoin(
            ClientModel, DomainModel.client_id == ClientModel.id
        )

    def _load(self, stmt) -> List[NotifiableItem]:
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading domains: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load domains: {e}") from e

        items = []
        for domain, client in rows:
            try:
                items.append(build_domain_item(domain, client))
            except (ValidationError, ValueError) as e:
                logger.warning(
                    f"Skipping malformed domain {domain.id}: {e}",
                    extra={"event": "domain.malformed", "item_id": domain.id},
                )
        return items

    def find_expiring_on(self, target: date) -> List[NotifiableItem]:
        """Active domains whose registration expires exactly on ``target``."""
        stmt = (
            self._base_query()
            .where(DomainModel.expiry_date == format_date(target))
            .where(DomainModel.is_active.is_(True))
            .order_by(DomainModel.id)
        )
        return self._load(stmt)

    def find_expiring_between(self, start: date, end: date) -> List[NotifiableItem]:
        """Active domains expiring within ``[start, end]`` inclusive."""
        stmt = (
            self._base_query()
            .where(DomainModel.expiry_date >= format_date(start))
            .where(DomainModel.expiry_date <= format_date(end))
            .where(DomainModel.is_active.is_(True))
            .order_by(DomainModel.expiry_date, DomainModel.id)
        )
        return self._load(stmt)

    def get_by_id(self, domain_id: int) -> Optional[NotifiableItem]:
        """One domain by id, active or not. Domains without an expiry are None."""
        items = self._load(self._base_query().where(DomainModel.id == domain_id))
        return items[0] if items else None


class TemplateRepository:
    """Repository for message templates."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, template_id: int) -> Optional[MessageTemplate]:
        """
        Raises:
            MalformedRecordError: If the stored recipients/config JSON is invalid
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(EmailTemplateModel, template_id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving template {template_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve template: {e}") from e

        if model is None:
            return None

        try:
            return model.to_domain()
        except ValidationError as e:
            raise MalformedRecordError(f"Template {template_id} is malformed: {e}") from e

    def save(self, template: MessageTemplate) -> MessageTemplate:
        try:
            model = self.session.merge(EmailTemplateModel.from_domain(template))
            self.session.flush()
            return model.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error saving template {template.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save template: {e}") from e


class NotificationLogRepository:
    """Append-only access to notification_log."""

    def __init__(self, session: Session):
        self.session = session

    def exists(self, type: str, reference_id: int, recipient: str) -> bool:
        """True if any record, sent or failed, exists for the tuple.

        Recipients compare case-insensitively and ignore surrounding
        whitespace, so rows written by the dashboard with a differently
        cased address still count.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(NotificationLogModel.id)
                .where(
                    NotificationLogModel.type == type,
                    NotificationLogModel.reference_id == reference_id,
                    func.lower(func.trim(NotificationLogModel.recipient))
                    == recipient.strip().lower(),
                )
                .limit(1)
            )
            return self.session.execute(stmt).first() is not None

        except SQLAlchemyError as e:
            logger.error(
                f"Error checking notification log for {type}/{reference_id}/{recipient}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to check notification log: {e}") from e

    def append(self, record: DispatchRecord) -> DispatchRecord:
        """Insert one record and return it with its id.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = NotificationLogModel.from_domain(record)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(
                f"Error appending notification log record for "
                f"{record.type}/{record.reference_id}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to append notification log record: {e}") from e

    def list_for_reference(self, type: str, reference_id: int) -> List[DispatchRecord]:
        """All records for one item, newest first."""
        try:
            stmt = (
                select(NotificationLogModel)
                .where(
                    NotificationLogModel.type == type,
                    NotificationLogModel.reference_id == reference_id,
                )
                .order_by(NotificationLogModel.sent_at.desc(), NotificationLogModel.id.desc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing notification log for {type}/{reference_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification log: {e}") from e

    def list_recent(self, limit: int = 50) -> List[DispatchRecord]:
        """Newest records first."""
        try:
            stmt = (
                select(NotificationLogModel)
                .order_by(NotificationLogModel.sent_at.desc(), NotificationLogModel.id.desc())
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing recent notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list notification log: {e}") from e

    def count_by_status(self, since: Optional[datetime] = None) -> Dict[str, int]:
        """Number of records per status, optionally only those at or after ``since``."""
        try:
            stmt = select(NotificationLogModel.status, func.count(NotificationLogModel.id))
            if since is not None:
                stmt = stmt.where(NotificationLogModel.sent_at >= _format_datetime(since))
            stmt = stmt.group_by(NotificationLogModel.status)

            counts: Counter = Counter()
            for status, count in self.session.execute(stmt).all():
                counts[status] = count
            return dict(counts)

        except SQLAlchemyError as e:
            logger.error(f"Error counting notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count notification log: {e}") from e

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Delete records older than ``cutoff``. Retention tooling only."""
        try:
            stmt = delete(NotificationLogModel).where(
                NotificationLogModel.sent_at < _format_datetime(cutoff)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            deleted_count = result.rowcount
            logger.info(
                f"Cleaned up {deleted_count} notification log records",
                extra={"event": "notification_log.cleanup", "deleted": deleted_count},
            )
            return deleted_count

        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up notification log: {e}", exc_info=True)
            raise PersistenceError(f"Failed to cleanup notification log: {e}") from e


class SettingsRepository:
    """Company branding and key/value application settings."""

    def __init__(self, session: Session):
        self.session = session

    def get_company_info(self) -> Optional[CompanyInfo]:
        try:
            model = self.session.execute(
                select(CompanyInfoModel).order_by(CompanyInfoModel.id).limit(1)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving company info: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve company info: {e}") from e

        return model.to_domain() if model else None

    def get_setting(self, key: str) -> Optional[Any]:
        """Decoded JSON value of an app_settings row, or None."""
        try:
            model = self.session.get(AppSettingModel, key)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving setting {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve setting: {e}") from e

        return model.value if model else None

    def set_setting(self, key: str, value: Any) -> None:
        try:
            self.session.merge(AppSettingModel(key=key, value=value))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error storing setting {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to store setting: {e}") from e
