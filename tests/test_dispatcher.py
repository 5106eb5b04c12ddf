"""Tests for the dispatcher passes and operator actions."""

import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from hosting_notifier.config.environment import EnvironmentConfig
from hosting_notifier.config.models import DispatchConfig
from hosting_notifier.dispatch import Dispatcher
from hosting_notifier.dispatch.models import OutcomeStatus
from hosting_notifier.notifications.attachments import AttachmentResolver
from hosting_notifier.notifications.ledger import LedgerKey
from hosting_notifier.notifications.models import SMTPDeliveryError
from hosting_notifier.notifications.reports import ReportRenderer
from hosting_notifier.notifications.settings import SettingsAccessor
from hosting_notifier.persistence import (
    NotificationLogRepository,
    PersistenceError,
    RuleRepository,
    close_database,
    get_session,
    init_database,
)
from hosting_notifier.persistence.schema import DomainModel
from tests.helpers import (
    add_client,
    add_domain,
    add_expiry_rule,
    add_hosting,
    add_recurring_rule,
    add_template,
)

NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
EXPIRY = date(2024, 6, 8)

REPORT_TEMPLATE = {
    "name": "Daily report",
    "type": "reports",
    "subject": "Hosting report {{currentDate}}",
    "html_content": "<h1>{{companyName}}</h1>{{hostingList}}",
    "recipients": {"to": [{"type": "literal", "value": "admin@example-hosting.rs"}]},
}


@pytest.fixture(autouse=True)
def database(tmp_path):
    init_database(f"sqlite:///{tmp_path / 'panel.db'}")
    yield
    close_database()


@pytest.fixture
def upload_dir(tmp_path):
    directory = tmp_path / "pdfs"
    directory.mkdir()
    return directory


@pytest.fixture
def transport():
    return Mock()


@pytest.fixture
def make_dispatcher(transport, upload_dir):
    created = []

    def factory(item_timeout="5s", max_workers=2):
        env_config = EnvironmentConfig(
            smtp_host="smtp.example.rs",
            smtp_port=587,
            smtp_from="noreply@example.rs",
        )
        dispatcher = Dispatcher(
            DispatchConfig(item_timeout=item_timeout, max_workers=max_workers),
            transport,
            ReportRenderer(upload_dir, clock=lambda: NOW),
            AttachmentResolver(upload_dir),
            SettingsAccessor(env_config, ttl_seconds=60),
            clock=lambda: NOW,
        )
        created.append(dispatcher)
        return dispatcher

    yield factory

    for dispatcher in created:
        dispatcher.close()


@pytest.fixture
def dispatcher(make_dispatcher):
    return make_dispatcher()


@pytest.fixture
def acme():
    """A client with one domain and a mail package expiring a week after NOW."""
    with get_session() as session:
        client = add_client(session, email1="office@acme.rs", tech_email="it@acme.rs")
        domain = add_domain(session, domain_name="acme.rs", client_id=client.id)
        mail = add_hosting(
            session, EXPIRY, service_type="mail", client_id=client.id, domain_id=domain.id
        )
        return {"client": client.id, "domain": domain.id, "mail": mail.id}


def log_records(type, reference_id):
    with get_session() as session:
        return NotificationLogRepository(session).list_for_reference(type, reference_id)


def sent_args(transport, index=0):
    return transport.send_html.call_args_list[index].args


class TestExpiryPass:
    """Tests for the automatic expiry sweep."""

    def test_sends_and_records(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.sent_count == 1
        assert not result.had_errors
        to, subject, html, cc, attachments = sent_args(transport)
        assert to == "office@acme.rs"
        assert subject == "WARNING: Mail Hosting expires in 7 days - acme.rs"
        assert cc is None
        assert attachments == []

        records = log_records("mail", acme["mail"])
        assert len(records) == 1
        assert records[0].status == "sent"
        assert records[0].recipient == "office@acme.rs"

    def test_second_pass_is_duplicate(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        dispatcher.run_expiry_pass(NOW)
        result = dispatcher.run_expiry_pass(NOW)

        assert result.duplicate_count == 1
        assert result.sent_count == 0
        assert transport.send_html.call_count == 1
        assert len(log_records("mail", acme["mail"])) == 1

    def test_notified_once_across_offsets(self, dispatcher, transport, acme):
        """Later offsets of the same rule do not resend to the same recipient."""
        with get_session() as session:
            add_expiry_rule(session, offsets=(30, 7, 1))

        dispatcher.run_expiry_pass(NOW)
        result = dispatcher.run_expiry_pass(NOW + timedelta(days=6))

        assert result.duplicate_count == 1
        assert transport.send_html.call_count == 1

    def test_only_exact_offsets_match(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(6, 8))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.outcomes == []
        transport.send_html.assert_not_called()

    def test_web_and_mail_are_separate_tuples(self, dispatcher, transport, acme):
        with get_session() as session:
            add_hosting(
                session,
                EXPIRY,
                service_type="hosting",
                client_id=acme["client"],
                domain_id=acme["domain"],
            )
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.sent_count == 2
        subjects = {sent_args(transport, i)[1] for i in range(2)}
        assert subjects == {
            "WARNING: Mail Hosting expires in 7 days - acme.rs",
            "WARNING: Web Hosting expires in 7 days - acme.rs",
        }

    def test_entity_scope(self, dispatcher, transport, acme):
        with get_session() as session:
            add_hosting(session, EXPIRY, service_type="hosting", client_id=acme["client"])
            add_expiry_rule(session, offsets=(7,), entity_scope="hosting")

        result = dispatcher.run_expiry_pass(NOW)

        assert result.sent_count == 1
        assert log_records("mail", acme["mail"]) == []

    def test_disabled_rule_ignored(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,), enabled=False)

        result = dispatcher.run_expiry_pass(NOW)

        assert result.rules_evaluated == 0
        transport.send_html.assert_not_called()

    def test_failed_send_recorded_and_not_retried(self, dispatcher, transport, acme):
        transport.send_html.side_effect = SMTPDeliveryError("Recipient refused")
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.failed_count == 1
        assert result.had_errors
        records = log_records("mail", acme["mail"])
        assert records[0].status == "failed"
        assert "Recipient refused" in records[0].error

        retry = dispatcher.run_expiry_pass(NOW)
        assert retry.duplicate_count == 1
        assert transport.send_html.call_count == 1

    def test_no_recipient_skipped(self, dispatcher, transport):
        with get_session() as session:
            client = add_client(session, email1=None)
            add_hosting(session, EXPIRY, client_id=client.id)
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.skipped_count == 1
        assert result.outcomes[0].reason == "no_recipient"
        assert not result.had_errors
        transport.send_html.assert_not_called()

    def test_template_rendered(self, dispatcher, transport, acme):
        with get_session() as session:
            template = add_template(session)
            add_expiry_rule(session, offsets=(7,), template_id=template.id)

        dispatcher.run_expiry_pass(NOW)

        _, subject, html, _, _ = sent_args(transport)
        assert subject == "acme.rs expires in 7 days"
        assert "Acme d.o.o." in html

    def test_inactive_template_skips_rule(self, dispatcher, transport, acme):
        with get_session() as session:
            template = add_template(session, is_active=False)
            add_expiry_rule(session, offsets=(7,), template_id=template.id)

        result = dispatcher.run_expiry_pass(NOW)

        assert result.skipped_count == 1
        assert result.outcomes[0].reason == "template_unavailable"
        transport.send_html.assert_not_called()

    def test_template_recipients_and_technical_cc(self, dispatcher, transport, acme):
        with get_session() as session:
            template = add_template(
                session,
                recipients={
                    "to": [{"type": "variable", "value": "clientPrimaryContact"}],
                    "cc": [{"type": "variable", "value": "clientTechContact"}],
                },
            )
            add_expiry_rule(session, offsets=(7,), template_id=template.id)

        dispatcher.run_expiry_pass(NOW)

        to, _, _, cc, _ = sent_args(transport)
        assert to == "office@acme.rs"
        assert cc == "it@acme.rs"

    def test_domain_document_attached(self, dispatcher, transport, acme, upload_dir):
        (upload_dir / f"{acme['domain']}_contract.pdf").write_bytes(b"%PDF-1.4 contract")
        with get_session() as session:
            template = add_template(session, attach_domain_pdf=True)
            add_expiry_rule(session, offsets=(7,), template_id=template.id)

        dispatcher.run_expiry_pass(NOW)

        attachments = sent_args(transport)[4]
        assert [a.filename for a in attachments] == ["contract.pdf"]

    def test_missing_domain_document_fails_item(self, dispatcher, transport, acme):
        with get_session() as session:
            template = add_template(session, attach_domain_pdf=True)
            add_expiry_rule(session, offsets=(7,), template_id=template.id)

        result = dispatcher.run_expiry_pass(NOW)

        assert result.failed_count == 1
        transport.send_html.assert_not_called()
        assert log_records("mail", acme["mail"])[0].status == "failed"

    def test_slow_send_times_out(self, make_dispatcher, transport, acme):
        release = threading.Event()
        transport.send_html.side_effect = lambda *args: release.wait(5)
        dispatcher = make_dispatcher(item_timeout="1s")
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        try:
            result = dispatcher.run_expiry_pass(NOW)
        finally:
            release.set()

        assert result.failed_count == 1
        assert "did not finish" in result.outcomes[0].reason
        assert log_records("mail", acme["mail"])[0].status == "failed"

    def test_skipped_while_previous_pass_runs(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        dispatcher._expiry_lock.acquire()
        try:
            result = dispatcher.run_expiry_pass(NOW)
        finally:
            dispatcher._expiry_lock.release()

        assert result.skipped is True
        assert result.rules_evaluated == 0
        assert not result.had_errors
        transport.send_html.assert_not_called()

    def test_clock_used_without_now(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass()

        assert result.sent_count == 1


class TestDomainSweep:
    """Tests for domain registration notices."""

    @pytest.fixture
    def shop(self, acme):
        with get_session() as session:
            domain = add_domain(
                session, "acme-shop.rs", client_id=acme["client"], expiry_date=EXPIRY
            )
            return domain.id

    def test_domain_notified_with_its_own_type(self, dispatcher, transport, acme, shop):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.sent_count == 2
        subjects = {sent_args(transport, i)[1] for i in range(2)}
        assert "WARNING: Domain expires in 7 days - acme-shop.rs" in subjects

        records = log_records("domain", shop)
        assert len(records) == 1
        assert records[0].recipient == "office@acme.rs"
        assert records[0].status == "sent"

    def test_domain_and_hosting_ids_do_not_collide(self, dispatcher, transport, acme):
        """A domain sharing its id with a hosting record is still notified."""
        with get_session() as session:
            session.get(DomainModel, acme["domain"]).expiry_date = EXPIRY.isoformat()
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert result.sent_count == 2
        assert len(log_records("domain", acme["domain"])) == 1
        assert len(log_records("mail", acme["mail"])) == 1

    def test_second_pass_is_duplicate(self, dispatcher, transport, shop):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,), entity_scope="domain")

        dispatcher.run_expiry_pass(NOW)
        result = dispatcher.run_expiry_pass(NOW)

        assert result.duplicate_count == 1
        assert transport.send_html.call_count == 1

    def test_domain_scope_skips_hosting(self, dispatcher, transport, acme, shop):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,), entity_scope="domain")

        result = dispatcher.run_expiry_pass(NOW)

        assert [o.reference_id for o in result.outcomes] == [shop]
        assert log_records("mail", acme["mail"]) == []

    def test_hosting_scope_skips_domains(self, dispatcher, transport, acme, shop):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,), entity_scope="mail")

        result = dispatcher.run_expiry_pass(NOW)

        assert [o.reference_id for o in result.outcomes] == [acme["mail"]]
        assert log_records("domain", shop) == []

    def test_inactive_domain_ignored(self, dispatcher, transport, acme):
        with get_session() as session:
            add_domain(
                session, "gone.rs", client_id=acme["client"], expiry_date=EXPIRY, is_active=False
            )
            add_expiry_rule(session, offsets=(7,), entity_scope="domain")

        result = dispatcher.run_expiry_pass(NOW)

        assert result.outcomes == []
        transport.send_html.assert_not_called()

    def test_manual_trigger_for_one_domain(self, dispatcher, transport, acme):
        with get_session() as session:
            old = add_domain(
                session, "old-acme.rs", client_id=acme["client"], expiry_date=date(2024, 3, 15)
            ).id
            rule_id = add_expiry_rule(session, offsets=(7,), entity_scope="domain").id

        result = dispatcher.trigger_rule(rule_id, item_id=old, now=NOW)

        assert result.sent_count == 1
        assert sent_args(transport)[1] == "URGENT: Domain expired 78 days ago - old-acme.rs"
        assert log_records("domain", old)[0].status == "sent"

    def test_manual_trigger_unknown_domain(self, dispatcher, acme):
        with get_session() as session:
            rule_id = add_expiry_rule(session, offsets=(7,), entity_scope="domain").id

        result = dispatcher.trigger_rule(rule_id, item_id=999, now=NOW)

        assert "Domain 999 not found" in result.errors[0]


class TestFailureIsolation:
    """One item's failure never stops the items after it."""

    @pytest.fixture
    def web(self, acme):
        """A web package expiring with the acme mail package; dispatched second."""
        with get_session() as session:
            return add_hosting(
                session, EXPIRY, client_id=acme["client"], domain_id=acme["domain"]
            ).id

    @staticmethod
    def _failing_once(original, error):
        calls = []

        def replacement(self, *args):
            calls.append(args)
            if len(calls) == 1:
                raise error
            return original(self, *args)

        return replacement

    def test_failed_send_does_not_stop_next_item(self, dispatcher, transport, acme, web):
        transport.send_html.side_effect = [SMTPDeliveryError("Recipient refused"), None]
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        result = dispatcher.run_expiry_pass(NOW)

        assert [o.status for o in result.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.SENT]
        assert log_records("mail", acme["mail"])[0].status == "failed"
        assert log_records("hosting", web)[0].status == "sent"

    def test_hung_send_does_not_stop_next_item(self, make_dispatcher, transport, acme, web):
        release = threading.Event()

        def send(*args):
            if transport.send_html.call_count == 1:
                release.wait(10)

        transport.send_html.side_effect = send
        dispatcher = make_dispatcher(item_timeout="1s", max_workers=2)
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        try:
            result = dispatcher.run_expiry_pass(NOW)
        finally:
            release.set()

        assert [o.status for o in result.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.SENT]
        assert log_records("hosting", web)[0].status == "sent"

    def test_log_lookup_error_fails_only_that_item(self, dispatcher, transport, acme, web):
        flaky = self._failing_once(
            NotificationLogRepository.exists, PersistenceError("database is locked")
        )
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        with patch.object(NotificationLogRepository, "exists", flaky):
            result = dispatcher.run_expiry_pass(NOW)

        assert result.errors == []
        assert [o.status for o in result.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.SENT]
        assert "Notification log unavailable" in result.outcomes[0].reason
        assert transport.send_html.call_count == 1
        assert sent_args(transport)[1] == "WARNING: Web Hosting expires in 7 days - acme.rs"
        assert log_records("mail", acme["mail"]) == []
        assert not dispatcher.ledger.is_reserved(LedgerKey("mail", acme["mail"], "office@acme.rs"))

    def test_log_write_error_keeps_going(self, dispatcher, transport, acme, web):
        flaky = self._failing_once(
            NotificationLogRepository.append, PersistenceError("disk I/O error")
        )
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))

        with patch.object(NotificationLogRepository, "append", flaky):
            result = dispatcher.run_expiry_pass(NOW)

        assert result.errors == []
        assert [o.status for o in result.outcomes] == [OutcomeStatus.SENT, OutcomeStatus.SENT]
        assert "not recorded" in result.outcomes[0].reason
        assert transport.send_html.call_count == 2
        assert log_records("mail", acme["mail"]) == []
        assert log_records("hosting", web)[0].status == "sent"
        assert not dispatcher.ledger.is_reserved(LedgerKey("mail", acme["mail"], "office@acme.rs"))

    def test_manual_log_write_error_keeps_going(self, dispatcher, transport, acme, web):
        flaky = self._failing_once(
            NotificationLogRepository.append, PersistenceError("disk I/O error")
        )
        with get_session() as session:
            rule_id = add_expiry_rule(session, offsets=(7,)).id

        with patch.object(NotificationLogRepository, "append", flaky):
            result = dispatcher.trigger_rule(rule_id, now=NOW)

        assert result.errors == []
        assert result.sent_count == 2
        assert log_records("hosting", web)[0].status == "sent"


class TestWorkerSaturation:
    """Items that cannot get a worker are skipped and left for a later pass."""

    def test_item_skipped_while_worker_hangs(self, make_dispatcher, transport, acme):
        release = threading.Event()
        transport.send_html.side_effect = lambda *args: release.wait(10)
        dispatcher = make_dispatcher(item_timeout="1s", max_workers=1)
        with get_session() as session:
            web = add_hosting(session, EXPIRY, client_id=acme["client"]).id
            add_expiry_rule(session, offsets=(7,))

        try:
            result = dispatcher.run_expiry_pass(NOW)
        finally:
            release.set()

        assert [o.status for o in result.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.SKIPPED]
        assert "did not finish" in result.outcomes[0].reason
        assert result.outcomes[1].reason == "pool_saturated"
        assert log_records("hosting", web) == []
        assert not dispatcher.ledger.is_reserved(LedgerKey("hosting", web, "office@acme.rs"))

        retry = dispatcher.run_expiry_pass(NOW)

        assert retry.sent_count == 1
        assert retry.duplicate_count == 1
        assert log_records("hosting", web)[0].status == "sent"

    def test_recurring_rule_waits_for_free_worker(self, make_dispatcher, transport):
        dispatcher = make_dispatcher(item_timeout="1s", max_workers=1)
        with get_session() as session:
            template = add_template(session, **REPORT_TEMPLATE)
            rule_id = add_recurring_rule(session, template_id=template.id).id

        dispatcher._slots.acquire()
        try:
            result = dispatcher.run_recurring_pass(NOW)
        finally:
            dispatcher._slots.release()

        assert result.skipped_count == 1
        assert result.outcomes[0].reason == "pool_saturated"
        assert log_records("reports", rule_id) == []
        transport.send_html.assert_not_called()

        retry = dispatcher.run_recurring_pass(NOW)

        assert retry.sent_count == 1
        with get_session() as session:
            assert RuleRepository(session).get_by_id(rule_id).last_dispatch == NOW


class TestRecurringPass:
    """Tests for the recurring-rule tick."""

    def _report_rule(self, **fields):
        with get_session() as session:
            template = add_template(session, **REPORT_TEMPLATE)
            return add_recurring_rule(session, template_id=template.id, **fields).id

    def test_due_rule_sent_and_stamped(self, dispatcher, transport, acme):
        rule_id = self._report_rule()

        result = dispatcher.run_recurring_pass(NOW)

        assert result.sent_count == 1
        to, subject, html, _, _ = sent_args(transport)
        assert to == "admin@example-hosting.rs"
        assert "acme.rs" in html
        with get_session() as session:
            assert RuleRepository(session).get_by_id(rule_id).last_dispatch == NOW

    def test_not_resent_in_same_period(self, dispatcher, transport):
        self._report_rule()

        dispatcher.run_recurring_pass(NOW)
        result = dispatcher.run_recurring_pass(NOW + timedelta(seconds=30))

        assert result.outcomes == []
        assert transport.send_html.call_count == 1

    def test_not_due(self, dispatcher, transport):
        self._report_rule(run_at_time="10:00")

        result = dispatcher.run_recurring_pass(NOW)

        assert result.rules_evaluated == 1
        assert result.outcomes == []
        transport.send_html.assert_not_called()

    def test_failure_recorded_and_not_stamped(self, dispatcher, transport):
        transport.send_html.side_effect = SMTPDeliveryError("Connection refused")
        rule_id = self._report_rule()

        result = dispatcher.run_recurring_pass(NOW)

        assert result.failed_count == 1
        records = log_records("reports", rule_id)
        assert records[0].status == "failed"
        assert records[0].recipient == "admin@example-hosting.rs"
        with get_session() as session:
            assert RuleRepository(session).get_by_id(rule_id).last_dispatch is None

    def test_rule_without_template_skipped(self, dispatcher, transport):
        with get_session() as session:
            add_recurring_rule(session)

        result = dispatcher.run_recurring_pass(NOW)

        assert result.outcomes[0].status == OutcomeStatus.SKIPPED
        assert result.outcomes[0].reason == "template_unavailable"

    def test_full_pass_combines(self, dispatcher, transport, acme):
        with get_session() as session:
            add_expiry_rule(session, offsets=(7,))
        self._report_rule()

        result = dispatcher.run_pass(NOW)

        assert result.pass_name == "full"
        assert result.rules_evaluated == 2
        assert result.sent_count == 2


class TestTriggerRule:
    """Tests for manual resends."""

    def test_resends_and_records(self, dispatcher, transport, acme):
        with get_session() as session:
            rule_id = add_expiry_rule(session, offsets=(30, 7, 1)).id

        dispatcher.run_expiry_pass(NOW)
        result = dispatcher.trigger_rule(rule_id, now=NOW)

        assert result.pass_name == "manual"
        assert result.sent_count == 1
        assert transport.send_html.call_count == 2
        assert len(log_records("mail", acme["mail"])) == 2

    def test_covers_offset_window(self, dispatcher, transport, acme):
        with get_session() as session:
            add_hosting(session, date(2024, 6, 20), client_id=acme["client"])
            add_hosting(session, date(2024, 7, 15), client_id=acme["client"])
            rule_id = add_expiry_rule(session, offsets=(30, 7, 1)).id

        result = dispatcher.trigger_rule(rule_id, now=NOW)

        assert result.sent_count == 2

    def test_single_item_regardless_of_date(self, dispatcher, transport, acme):
        with get_session() as session:
            old = add_hosting(session, date(2024, 3, 15), client_id=acme["client"]).id
            rule_id = add_expiry_rule(session, offsets=(7,)).id

        result = dispatcher.trigger_rule(rule_id, item_id=old, now=NOW)

        assert result.sent_count == 1
        assert result.outcomes[0].reference_id == old

    def test_unknown_item(self, dispatcher, acme):
        with get_session() as session:
            rule_id = add_expiry_rule(session, offsets=(7,)).id

        result = dispatcher.trigger_rule(rule_id, item_id=999, now=NOW)

        assert result.had_errors
        assert "not found" in result.errors[0]

    def test_unknown_rule(self, dispatcher):
        result = dispatcher.trigger_rule(42, now=NOW)

        assert result.had_errors
        assert "Notification rule 42 not found" in result.errors[0]

    def test_recurring_rule_rejected(self, dispatcher, transport):
        with get_session() as session:
            rule_id = add_recurring_rule(session).id

        result = dispatcher.trigger_rule(rule_id, now=NOW)

        assert "not an expiry rule" in result.errors[0]
        transport.send_html.assert_not_called()


class TestSendTest:
    """Tests for operator test sends."""

    def test_prefixed_and_not_recorded(self, dispatcher, transport, acme):
        with get_session() as session:
            template = add_template(session)
            rule_id = add_expiry_rule(session, offsets=(7,), template_id=template.id).id

        result = dispatcher.send_test(rule_id, "ops@example.rs", now=NOW)

        assert result.sent_count == 1
        to, subject, _, cc, _ = sent_args(transport)
        assert to == "ops@example.rs"
        assert subject.startswith("[TEST] ")
        assert cc is None
        with get_session() as session:
            assert NotificationLogRepository(session).list_recent() == []

    def test_default_message_without_template(self, dispatcher, transport):
        with get_session() as session:
            rule_id = add_expiry_rule(session, offsets=(7,)).id

        dispatcher.send_test(rule_id, "ops@example.rs", now=NOW)

        assert sent_args(transport)[1] == "[TEST] Hosting Panel - Test notification"

    def test_recurring_rule_keeps_last_dispatch(self, dispatcher, transport):
        with get_session() as session:
            template = add_template(session, **REPORT_TEMPLATE)
            rule_id = add_recurring_rule(session, template_id=template.id).id

        dispatcher.send_test(rule_id, "ops@example.rs", now=NOW)

        assert transport.send_html.call_count == 1
        with get_session() as session:
            assert RuleRepository(session).get_by_id(rule_id).last_dispatch is None

    def test_failure_reported(self, dispatcher, transport):
        transport.send_html.side_effect = SMTPDeliveryError("Authentication failed")
        with get_session() as session:
            rule_id = add_expiry_rule(session, offsets=(7,)).id

        result = dispatcher.send_test(rule_id, "ops@example.rs", now=NOW)

        assert result.failed_count == 1
        assert result.had_errors
