"""Dispatch passes over notification rules."""

import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from hosting_notifier.config.models import DispatchConfig
from hosting_notifier.domain.models import (
    CompanyInfo,
    DispatchStatus,
    EntityScope,
    MessageTemplate,
    NotifiableItem,
    NotificationRule,
    ReportConfig,
    RuleClass,
    RuleType,
    SystemConfig,
)
from hosting_notifier.logging import get_logger
from hosting_notifier.logging.context import log_context
from hosting_notifier.notifications.attachments import AttachmentResolver
from hosting_notifier.notifications.ledger import LedgerKey, NotificationLedger, record_dispatch
from hosting_notifier.notifications.models import Attachment, ResolvedRecipients
from hosting_notifier.notifications.recipients import RecipientContext, resolve_recipients
from hosting_notifier.notifications.reports import ReportRenderer
from hosting_notifier.notifications.settings import SettingsAccessor
from hosting_notifier.notifications.smtp_client import SMTPClient
from hosting_notifier.notifications.templates import (
    DefaultMessageRenderer,
    build_company_variables,
    build_item_variables,
    render,
    sample_variables,
)
from hosting_notifier.persistence import (
    DomainRepository,
    HostingRepository,
    RuleRepository,
    TemplateRepository,
    get_session,
)
from hosting_notifier.scheduler.expiry_window import days_until, offset_window, target_dates
from hosting_notifier.scheduler.recurrence import should_fire_now
from hosting_notifier.utils.timestamps import ensure_utc, utc_now

from .models import (
    DispatchRunResult,
    DispatchTimeoutError,
    ItemOutcome,
    OutcomeStatus,
    WorkerPoolSaturatedError,
)

logger = get_logger(__name__, component="dispatch")


@dataclass
class _PassState:
    rules_evaluated: int = 0
    outcomes: List[ItemOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class Dispatcher:
    """
    Runs the expiry sweep, the recurring-rule tick and the operator actions.

    Each automatic pass holds its own lock; a pass that starts while the
    previous one of the same kind is still running is skipped. Per-item
    delivery (rendering reports, reading attachments, talking to SMTP) runs
    on a worker pool and is abandoned after ``dispatch.item_timeout``. When
    every worker is still busy with abandoned sends, the item is skipped
    without a record and picked up again by a later pass.

    No pass method raises: per-item failures become outcomes, rule-level
    failures are collected in ``DispatchRunResult.errors``.
    """

    def __init__(
        self,
        dispatch_config: DispatchConfig,
        transport: SMTPClient,
        report_renderer: ReportRenderer,
        attachment_resolver: AttachmentResolver,
        settings: SettingsAccessor,
        ledger: Optional[NotificationLedger] = None,
        clock: Callable[[], datetime] = utc_now,
        zone: tzinfo = timezone.utc,
        test_subject_prefix: str = "[TEST]",
        default_renderer: Optional[DefaultMessageRenderer] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            dispatch_config: Timeout and worker pool size
            transport: Delivers rendered messages
            report_renderer: Builds hostingList/systemInfo fragments and PDFs
            attachment_resolver: Finds uploaded domain documents
            settings: Cached company info
            ledger: At-most-once bookkeeping (a fresh one if omitted)
            clock: Source of the current UTC time
            zone: Timezone rule times and expiry dates are evaluated in
            test_subject_prefix: Prepended to the subject of test sends
            default_renderer: Built-in messages for rules without a template
        """
        self.dispatch_config = dispatch_config
        self.item_timeout = dispatch_config.item_timeout_seconds
        self.transport = transport
        self.report_renderer = report_renderer
        self.attachment_resolver = attachment_resolver
        self.settings = settings
        self.ledger = ledger or NotificationLedger()
        self.clock = clock
        self.zone = zone
        self.test_subject_prefix = test_subject_prefix
        self.default_renderer = default_renderer or DefaultMessageRenderer()

        self._executor = ThreadPoolExecutor(
            max_workers=dispatch_config.max_workers,
            thread_name_prefix="dispatch",
        )
        self._slots = threading.BoundedSemaphore(dispatch_config.max_workers)
        self._expiry_lock = threading.Lock()
        self._recurring_lock = threading.Lock()

    def close(self) -> None:
        """Stop the worker pool; sends still running are not waited for."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    # Automatic passes

    def run_expiry_pass(self, now: Optional[datetime] = None) -> DispatchRunResult:
        """
        Notify items whose expiry date is exactly ``today + offset``.

        Every (type, item, recipient) tuple is sent at most once: an existing
        notification log record, sent or failed, suppresses the send.
        """
        now = self._resolve_now(now)
        today = now.astimezone(self.zone).date()

        def body(state: _PassState) -> None:
            for rule in self._load_rules(RuleClass.EXPIRY):
                state.rules_evaluated += 1
                with log_context(rule_id=rule.id, rule_type=rule.rule_type.value):
                    try:
                        state.outcomes.extend(self._run_expiry_rule(rule, today, now))
                    except Exception as e:
                        self._rule_error(rule, e, state)

        return self._run_locked("expiry", self._expiry_lock, body)

    def run_recurring_pass(self, now: Optional[datetime] = None) -> DispatchRunResult:
        """
        Send every recurring rule that is due at ``now``.

        ``last_dispatch`` moves only after a successful send, so a failed rule
        is retried at its next matching tick.
        """
        now = self._resolve_now(now)

        def body(state: _PassState) -> None:
            for rule in self._load_rules(RuleClass.RECURRING):
                state.rules_evaluated += 1
                with log_context(rule_id=rule.id, rule_type=rule.rule_type.value):
                    try:
                        outcome = self._run_recurring_rule(rule, now)
                    except Exception as e:
                        self._rule_error(rule, e, state)
                        continue
                    if outcome is not None:
                        state.outcomes.append(outcome)

        return self._run_locked("recurring", self._recurring_lock, body)

    def run_pass(self, now: Optional[datetime] = None) -> DispatchRunResult:
        """Expiry sweep followed by the recurring tick."""
        now = self._resolve_now(now)
        return DispatchRunResult.combine(
            "full",
            [self.run_expiry_pass(now), self.run_recurring_pass(now)],
        )

    # Operator actions

    def trigger_rule(
        self,
        rule_id: int,
        item_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> DispatchRunResult:
        """
        Resend an expiry rule on demand.

        Covers every item expiring within ``[today + min(offsets), today +
        max(offsets)]``, or only ``item_id`` regardless of its date. The
        notification log is not consulted, but each attempt is recorded.
        """
        now = self._resolve_now(now)
        today = now.astimezone(self.zone).date()

        def body(state: _PassState) -> None:
            rule = self._load_rule(rule_id)
            if rule.rule_class is not RuleClass.EXPIRY:
                raise ValueError(f"Rule {rule_id} is a {rule.rule_type.value} rule, not an expiry rule")
            state.rules_evaluated = 1

            with log_context(rule_id=rule.id, rule_type=rule.rule_type.value):
                template = self._load_template(rule)
                if rule.template_id is not None and template is None:
                    raise ValueError(f"Template {rule.template_id} is missing or inactive")

                items = self._manual_targets(rule, item_id, today)
                logger.info(
                    f"Manual trigger of rule {rule.id} covers {len(items)} items",
                    extra={"event": "dispatch.manual.started", "item_count": len(items)},
                )

                company = self.settings.company_info()
                for item in items:
                    state.outcomes.append(
                        self._dispatch_item(rule, template, item, today, now, company, use_ledger=False)
                    )

        return self._run("manual", body)

    def send_test(
        self,
        rule_id: int,
        recipient: str,
        now: Optional[datetime] = None,
    ) -> DispatchRunResult:
        """
        Render the rule's template with sample values and send it to ``recipient``.

        Nothing is recorded and ``last_dispatch`` is left alone.
        """
        now = self._resolve_now(now)

        def body(state: _PassState) -> None:
            rule = self._load_rule(rule_id)
            state.rules_evaluated = 1

            with log_context(rule_id=rule.id, rule_type=rule.rule_type.value):
                template = self._load_template(rule)
                company = self.settings.company_info()

                try:
                    self._run_with_timeout(
                        self._deliver_test, rule, template, recipient, company, now
                    )
                except Exception as e:
                    logger.error(
                        f"Test send for rule {rule.id} failed: {e}",
                        extra={"event": "dispatch.test.failed", "recipient": recipient},
                    )
                    state.outcomes.append(
                        ItemOutcome(rule.id, OutcomeStatus.FAILED, rule.id, recipient, str(e))
                    )
                    return

                logger.info(
                    f"Test message for rule {rule.id} sent to {recipient}",
                    extra={"event": "dispatch.test.sent", "recipient": recipient},
                )
                state.outcomes.append(ItemOutcome(rule.id, OutcomeStatus.SENT, rule.id, recipient))

        return self._run("test", body)

    # Expiry rules

    def _run_expiry_rule(
        self, rule: NotificationRule, today: date, now: datetime
    ) -> List[ItemOutcome]:
        template = self._load_template(rule)
        if rule.template_id is not None and template is None:
            return [self._skip_rule(rule, "template_unavailable")]

        company = self.settings.company_info()
        outcomes = []

        scope = rule.schedule.entity_scope

        for offset, target in target_dates(rule.schedule, today):
            items: List[NotifiableItem] = []
            with get_session() as session:
                if scope.covers_hosting:
                    items.extend(HostingRepository(session).find_expiring_on(target, scope))
                if scope.covers_domains:
                    items.extend(DomainRepository(session).find_expiring_on(target))

            logger.debug(
                f"Offset {offset}: {len(items)} items expire on {target.isoformat()}",
                extra={"offset": offset, "target_date": target.isoformat(), "count": len(items)},
            )

            for item in items:
                outcomes.append(
                    self._dispatch_item(rule, template, item, today, now, company, use_ledger=True)
                )

        return outcomes

    def _manual_targets(
        self, rule: NotificationRule, item_id: Optional[int], today: date
    ) -> List[NotifiableItem]:
        scope = rule.schedule.entity_scope

        with get_session() as session:
            if item_id is not None:
                # A bare id names a domain only for domain-scoped rules
                if scope is EntityScope.DOMAIN:
                    item = DomainRepository(session).get_by_id(item_id)
                    label = "Domain"
                else:
                    item = HostingRepository(session).get_by_id(item_id)
                    label = "Hosting record"
                if item is None:
                    raise ValueError(f"{label} {item_id} not found")
                return [item]

            start, end = offset_window(rule.schedule, today)
            items: List[NotifiableItem] = []
            if scope.covers_hosting:
                items.extend(HostingRepository(session).find_expiring_between(start, end, scope))
            if scope.covers_domains:
                items.extend(DomainRepository(session).find_expiring_between(start, end))
            return items

    def _dispatch_item(
        self,
        rule: NotificationRule,
        template: Optional[MessageTemplate],
        item: NotifiableItem,
        today: date,
        now: datetime,
        company: CompanyInfo,
        use_ledger: bool,
    ) -> ItemOutcome:
        """Resolve, reserve (automatic path only), deliver and record one item.

        Never raises: a failing log lookup, delivery or log write only
        affects this item's outcome.
        """
        days = days_until(item.expiry_date, today)
        kind = item.service_type.value

        with log_context(item_id=item.id, item_type=kind):
            recipients = resolve_recipients(
                template.recipients if template else None,
                rule.recipient_config,
                RecipientContext.from_item(item),
            )
            if recipients is None:
                logger.info(
                    f"No recipient for {kind} {item.id}, skipping",
                    extra={"event": "dispatch.item.skipped", "reason": "no_recipient"},
                )
                return ItemOutcome(rule.id, OutcomeStatus.SKIPPED, item.id, reason="no_recipient")

            key = LedgerKey(kind, item.id, recipients.to)

            if use_ledger:
                try:
                    reserved = self.ledger.check_and_reserve(key)
                except Exception as e:
                    logger.error(
                        f"Notification log unavailable for {kind} {item.id}: {e}",
                        extra={
                            "event": "dispatch.item.reserve_failed",
                            "recipient": recipients.to,
                            "error_type": type(e).__name__,
                        },
                    )
                    return ItemOutcome(
                        rule.id,
                        OutcomeStatus.FAILED,
                        item.id,
                        recipients.to,
                        f"Notification log unavailable: {e}",
                    )
                if not reserved:
                    logger.debug(
                        f"{kind} {item.id} already notified to {recipients.to}",
                        extra={"event": "dispatch.item.duplicate", "recipient": recipients.to},
                    )
                    return ItemOutcome(rule.id, OutcomeStatus.DUPLICATE, item.id, recipients.to)

            try:
                self._run_with_timeout(
                    self._deliver_expiry, template, item, days, recipients, company, now
                )
            except WorkerPoolSaturatedError:
                if use_ledger:
                    self.ledger.release(key)
                logger.warning(
                    f"No free worker for {kind} {item.id}, will retry on a later pass",
                    extra={
                        "event": "dispatch.item.skipped",
                        "reason": "pool_saturated",
                        "recipient": recipients.to,
                    },
                )
                return ItemOutcome(
                    rule.id, OutcomeStatus.SKIPPED, item.id, recipients.to, "pool_saturated"
                )
            except Exception as e:
                status, error = DispatchStatus.FAILED, str(e)
                logger.error(
                    f"Notification for {kind} {item.id} failed: {e}",
                    extra={
                        "event": "dispatch.item.failed",
                        "recipient": recipients.to,
                        "error_type": type(e).__name__,
                    },
                )
            else:
                status, error = DispatchStatus.SENT, None
                logger.info(
                    f"Notification for {kind} {item.id} sent to {recipients.to}",
                    extra={
                        "event": "dispatch.item.sent",
                        "recipient": recipients.to,
                        "days_until_expiry": days,
                    },
                )

            reason = error
            try:
                if use_ledger:
                    self.ledger.complete(key, status, error)
                else:
                    record_dispatch(key, status, error)
            except Exception as e:
                reason = f"{error}; not recorded: {e}" if error else f"not recorded: {e}"
                logger.error(
                    f"Could not record {status.value} notification for {kind} {item.id}: {e}",
                    extra={
                        "event": "dispatch.item.record_failed",
                        "recipient": recipients.to,
                        "error_type": type(e).__name__,
                    },
                )

            return ItemOutcome(
                rule.id,
                OutcomeStatus.SENT if status is DispatchStatus.SENT else OutcomeStatus.FAILED,
                item.id,
                recipients.to,
                reason,
            )

    def _deliver_expiry(
        self,
        template: Optional[MessageTemplate],
        item: NotifiableItem,
        days: int,
        recipients: ResolvedRecipients,
        company: CompanyInfo,
        now: datetime,
    ) -> None:
        local_now = now.astimezone(self.zone)

        if template is None:
            message = self.default_renderer.render_expiry_notice(item, days, company)
            subject, html = message.subject, message.html
            attachments: List[Attachment] = list(message.attachments)
        else:
            variables = build_item_variables(item, days, company, local_now)
            variables.update(self._report_variables(template, None, local_now))
            subject, html = render(template.subject, template.html_content, variables)
            attachments = self._template_attachments(template, None, local_now)

            if template.attach_domain_pdf and item.domain_id is not None:
                attachments.append(self.attachment_resolver.load(item.domain_id))

        self.transport.send_html(recipients.to, subject, html, recipients.cc, attachments)

    # Recurring rules

    def _run_recurring_rule(self, rule: NotificationRule, now: datetime) -> Optional[ItemOutcome]:
        local_now = now.astimezone(self.zone)
        if not should_fire_now(rule.schedule, rule.last_dispatch, local_now):
            return None

        template = self._load_template(rule)
        if template is None:
            return self._skip_rule(rule, "template_unavailable")

        recipients = resolve_recipients(
            template.recipients, rule.recipient_config, RecipientContext.empty()
        )
        if recipients is None:
            return self._skip_rule(rule, "no_recipient")

        company = self.settings.company_info()

        try:
            self._run_with_timeout(
                self._deliver_recurring, rule, template, recipients, company, local_now
            )
        except WorkerPoolSaturatedError:
            logger.warning(
                f"No free worker for recurring rule {rule.id}, will retry on a later tick",
                extra={
                    "event": "dispatch.item.skipped",
                    "reason": "pool_saturated",
                    "recipient": recipients.to,
                },
            )
            return ItemOutcome(
                rule.id, OutcomeStatus.SKIPPED, rule.id, recipients.to, "pool_saturated"
            )
        except Exception as e:
            logger.error(
                f"Recurring rule {rule.id} failed: {e}",
                extra={
                    "event": "dispatch.item.failed",
                    "recipient": recipients.to,
                    "error_type": type(e).__name__,
                },
            )
            record_dispatch(
                LedgerKey(rule.rule_type.value, rule.id, recipients.to),
                DispatchStatus.FAILED,
                str(e),
            )
            return ItemOutcome(rule.id, OutcomeStatus.FAILED, rule.id, recipients.to, str(e))

        with get_session() as session:
            RuleRepository(session).update_last_dispatch(rule.id, now)

        logger.info(
            f"Recurring rule {rule.id} sent to {recipients.to}",
            extra={"event": "dispatch.item.sent", "recipient": recipients.to},
        )
        return ItemOutcome(rule.id, OutcomeStatus.SENT, rule.id, recipients.to)

    def _deliver_recurring(
        self,
        rule: NotificationRule,
        template: MessageTemplate,
        recipients: ResolvedRecipients,
        company: CompanyInfo,
        local_now: datetime,
    ) -> None:
        variables = build_company_variables(company, local_now)
        variables.update(self._report_variables(template, rule.rule_type, local_now))
        subject, html = render(template.subject, template.html_content, variables)
        attachments = self._template_attachments(template, rule.rule_type, local_now)

        self.transport.send_html(recipients.to, subject, html, recipients.cc, attachments)

    # Test sends

    def _deliver_test(
        self,
        rule: NotificationRule,
        template: Optional[MessageTemplate],
        recipient: str,
        company: CompanyInfo,
        now: datetime,
    ) -> None:
        local_now = now.astimezone(self.zone)

        if template is None:
            message = self.default_renderer.render_test_message(company, local_now)
            subject, html = message.subject, message.html
            attachments: List[Attachment] = []
        else:
            variables = sample_variables(company, local_now)
            variables.update(self._report_variables(template, rule.rule_type, local_now))
            subject, html = render(template.subject, template.html_content, variables)
            attachments = self._template_attachments(template, rule.rule_type, local_now)

        self.transport.send_html(
            recipient, f"{self.test_subject_prefix} {subject}", html, None, attachments
        )

    # Reports

    def _report_config(
        self, template: MessageTemplate, rule_type: Optional[RuleType]
    ) -> Optional[ReportConfig]:
        if template.report_config is not None:
            return template.report_config
        if rule_type is RuleType.REPORTS:
            return ReportConfig()
        return None

    def _system_config(
        self, template: MessageTemplate, rule_type: Optional[RuleType]
    ) -> Optional[SystemConfig]:
        if template.system_config is not None:
            return template.system_config
        if rule_type is RuleType.SYSTEM:
            return SystemConfig()
        return None

    def _report_variables(
        self,
        template: MessageTemplate,
        rule_type: Optional[RuleType],
        local_now: datetime,
    ) -> Dict[str, Any]:
        variables: Dict[str, Any] = {}

        report_config = self._report_config(template, rule_type)
        if report_config is not None:
            variables["hostingList"] = self.report_renderer.render_html_fragment(
                report_config, local_now.date()
            )

        system_config = self._system_config(template, rule_type)
        if system_config is not None:
            variables["systemInfo"] = self.report_renderer.render_system_fragment(
                system_config, local_now
            )

        return variables

    def _template_attachments(
        self,
        template: MessageTemplate,
        rule_type: Optional[RuleType],
        local_now: datetime,
    ) -> List[Attachment]:
        report_config = self._report_config(template, rule_type)
        if report_config is not None and report_config.attach_pdf:
            return [self.report_renderer.render_pdf_attachment(report_config, local_now.date())]
        return []

    # Plumbing

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self.clock()

    def _load_rules(self, rule_class: RuleClass) -> List[NotificationRule]:
        with get_session() as session:
            rules = RuleRepository(session).list_enabled(rule_class)
        logger.debug(
            f"Loaded {len(rules)} enabled {rule_class.value} rules",
            extra={"rule_class": rule_class.value, "count": len(rules)},
        )
        return rules

    def _load_rule(self, rule_id: int) -> NotificationRule:
        with get_session() as session:
            rule = RuleRepository(session).get_by_id(rule_id)
        if rule is None:
            raise ValueError(f"Notification rule {rule_id} not found")
        return rule

    def _load_template(self, rule: NotificationRule) -> Optional[MessageTemplate]:
        """The rule's template; None when it has none or it is missing or inactive."""
        if rule.template_id is None:
            return None

        with get_session() as session:
            template = TemplateRepository(session).get_by_id(rule.template_id)

        if template is None or not template.is_active:
            return None
        return template

    def _skip_rule(self, rule: NotificationRule, reason: str) -> ItemOutcome:
        logger.warning(
            f"Skipping rule {rule.id}: {reason}",
            extra={"event": "dispatch.rule.skipped", "reason": reason},
        )
        return ItemOutcome(rule.id, OutcomeStatus.SKIPPED, reason=reason)

    def _rule_error(self, rule: NotificationRule, error: Exception, state: _PassState) -> None:
        state.errors.append(f"rule {rule.id}: {error}")
        logger.error(
            f"Rule {rule.id} aborted: {error}",
            extra={"event": "dispatch.rule.error", "error_type": type(error).__name__},
            exc_info=True,
        )

    def _run_with_timeout(self, fn: Callable, *args) -> Any:
        """Run ``fn`` on the pool, carrying the log context along.

        A worker slot is claimed before submitting, so the timeout only
        counts time ``fn`` actually runs. A worker abandoned after a timeout
        keeps its slot until ``fn`` returns.

        Raises:
            WorkerPoolSaturatedError: If no slot frees up within item_timeout
            DispatchTimeoutError: If ``fn`` has not returned within item_timeout
        """
        if not self._slots.acquire(timeout=self.item_timeout):
            raise WorkerPoolSaturatedError(
                f"All {self.dispatch_config.max_workers} workers busy for {self.item_timeout}s"
            )

        ctx = contextvars.copy_context()

        def task():
            try:
                return ctx.run(fn, *args)
            finally:
                self._slots.release()

        try:
            future = self._executor.submit(task)
        except Exception:
            self._slots.release()
            raise

        try:
            return future.result(timeout=self.item_timeout)
        except FuturesTimeoutError as e:
            raise DispatchTimeoutError(
                f"Delivery did not finish within {self.item_timeout}s"
            ) from e

    def _run_locked(
        self,
        pass_name: str,
        lock: threading.Lock,
        body: Callable[[_PassState], None],
    ) -> DispatchRunResult:
        run_started_at = utc_now()

        if not lock.acquire(blocking=False):
            with log_context(run_id=uuid4().hex, pass_name=pass_name):
                logger.warning(
                    "Dispatch pass skipped: previous pass still in progress",
                    extra={"event": "dispatch.pass.skipped", "reason": "lock_held"},
                )
            return DispatchRunResult(
                pass_name=pass_name,
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                skipped=True,
            )

        try:
            return self._run(pass_name, body, run_started_at)
        finally:
            lock.release()

    def _run(
        self,
        pass_name: str,
        body: Callable[[_PassState], None],
        run_started_at: Optional[datetime] = None,
    ) -> DispatchRunResult:
        run_started_at = run_started_at or utc_now()
        state = _PassState()

        with log_context(run_id=uuid4().hex, pass_name=pass_name):
            logger.info("Dispatch pass started", extra={"event": "dispatch.pass.started"})

            try:
                body(state)
            except Exception as e:
                state.errors.append(str(e))
                logger.error(
                    f"Dispatch pass {pass_name} aborted: {e}",
                    extra={"event": "dispatch.pass.error", "error_type": type(e).__name__},
                    exc_info=True,
                )

            result = DispatchRunResult(
                pass_name=pass_name,
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                rules_evaluated=state.rules_evaluated,
                outcomes=state.outcomes,
                errors=state.errors,
            )

            logger.info(
                "Dispatch pass completed",
                extra={
                    "event": "dispatch.pass.completed",
                    "duration_ms": int(result.total_duration_seconds * 1000),
                    "rules_evaluated": result.rules_evaluated,
                    "sent": result.sent_count,
                    "failed": result.failed_count,
                    "skipped_items": result.skipped_count,
                    "duplicates": result.duplicate_count,
                    "errors": len(result.errors),
                },
            )
            return result
