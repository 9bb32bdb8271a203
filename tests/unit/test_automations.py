"""Unit tests for the automation engine."""

import httpx
import pytest
import respx
from sqlalchemy import select

from conftest import make_form, make_organization
from kundedata.services import automations as automation_service
from kundedata.services.automations import (
    ActionContext,
    AutomationActionError,
    delay_to_minutes,
    execute_action,
    matches_trigger,
    plan_actions,
    resolve_recipient,
    run_automations_for_submission,
)
from kundedata.services.email import EmailClient, set_email_client
from kundedata.settings import settings
from kundedata.storage.db import get_session
from kundedata.storage.models import (
    ActivityLog, Automation, AutomationAction, EmailLog, EmailTemplate, ScheduledJob, Submission
)


def action(type_, **config):
    return AutomationAction(type=type_, config=config)


def context(data=None, submission=None, payload=None):
    return ActionContext(
        organization_id=1,
        automation_id=1,
        submission=submission,
        data=data or {},
        payload=payload or {},
    )


@pytest.mark.unit
class TestPlanning:
    """WAIT_DELAY accumulation."""

    def test_delay_defaults_to_one_day(self):
        assert delay_to_minutes({}) == 1440

    @pytest.mark.parametrize("config,expected", [
        ({"delay_amount": 30, "delay_unit": "minutes"}, 30),
        ({"delay_amount": 2, "delay_unit": "hours"}, 120),
        ({"delay_amount": 3, "delay_unit": "days"}, 4320),
        ({"delay_amount": 1, "delay_unit": "weeks"}, 10080),
    ])
    def test_delay_units(self, config, expected):
        assert delay_to_minutes(config) == expected

    def test_wait_steps_are_dropped_and_delays_accumulate(self):
        actions = [
            action("SEND_EMAIL"),
            action("WAIT_DELAY", delay_amount=1, delay_unit="hours"),
            action("SEND_NOTIFICATION"),
            action("WAIT_DELAY", delay_amount=30, delay_unit="minutes"),
            action("UPDATE_SUBMISSION_STATUS"),
        ]
        plan = plan_actions(actions)

        assert [(step.index, step.delay_minutes) for step in plan] == [(0, 0), (2, 60), (4, 90)]

    def test_plan_of_only_waits_is_empty(self):
        assert plan_actions([action("WAIT_DELAY")]) == []


@pytest.mark.unit
class TestTriggerMatching:

    def test_form_submission_always_matches(self):
        assert matches_trigger(Automation(trigger_type="FORM_SUBMISSION", trigger_config={}), {})

    @pytest.mark.parametrize("operator,value,data,expected", [
        ("equals", "web", {"tjeneste": "web"}, True),
        ("equals", "web", {"tjeneste": "seo"}, False),
        ("not_equals", "web", {"tjeneste": "seo"}, True),
        ("contains", "haste", {"melding": "Dette HASTER"}, True),
        ("contains", "b", {"valg": ["a", "b"]}, True),
        ("not_empty", None, {"telefon": ""}, False),
        ("not_empty", None, {"telefon": "91234567"}, True),
    ])
    def test_field_value_operators(self, operator, value, data, expected):
        field_name = next(iter(data))
        automation = Automation(
            trigger_type="FIELD_VALUE",
            trigger_config={"field": field_name, "operator": operator, "value": value},
        )
        assert matches_trigger(automation, data) is expected

    def test_field_value_without_field_never_matches(self):
        automation = Automation(trigger_type="FIELD_VALUE", trigger_config={"value": "x"})
        assert not matches_trigger(automation, {"x": "x"})


@pytest.mark.unit
class TestRecipient:

    def test_submitter_field_wins(self):
        config = {"send_to_submitter": True, "email_field": "epost", "recipient_email": "fast@example.no"}
        assert resolve_recipient(config, context({"epost": "ola@example.no"})) == "ola@example.no"

    def test_fixed_recipient_then_payload(self):
        assert resolve_recipient({"recipient_email": "fast@example.no"}, context()) == "fast@example.no"
        payload_ctx = context(payload={"recipient_email": "jobb@example.no"})
        assert resolve_recipient({}, payload_ctx) == "jobb@example.no"

    def test_conventional_fields_are_last_resort(self):
        assert resolve_recipient({}, context({"email": "a@example.no"})) == "a@example.no"
        assert resolve_recipient({}, context({"epost": "b@example.no"})) == "b@example.no"
        assert resolve_recipient({}, context({"navn": "Ola"})) is None


@pytest.mark.unit
class TestActions:

    async def test_add_and_remove_tag(self):
        submission = Submission(data={}, meta={"tags": ["ny"]})
        ctx = context(submission=submission)

        await execute_action(None, action("ADD_TAG", tag="vip"), ctx)
        await execute_action(None, action("ADD_TAG", tag="vip"), ctx)
        assert submission.meta["tags"] == ["ny", "vip"]

        await execute_action(None, action("REMOVE_TAG", tag="ny"), ctx)
        assert submission.meta["tags"] == ["vip"]

    async def test_invalid_status_is_rejected(self):
        ctx = context(submission=Submission(data={}, status="NEW"))
        with pytest.raises(AutomationActionError, match="Ugyldig status: DONE"):
            await execute_action(None, action("UPDATE_SUBMISSION_STATUS", status="DONE"), ctx)

    async def test_status_accepts_new_status_key(self):
        submission = Submission(data={}, status="NEW")
        await execute_action(None, action("UPDATE_SUBMISSION_STATUS", new_status="CONTACTED"), context(submission=submission))
        assert submission.status == "CONTACTED"
        assert submission.last_contacted_at is not None

    async def test_unimplemented_actions_are_skipped(self):
        assert await execute_action(None, action("SPLIT_TEST"), context()) == "skipped"

    @respx.mock
    async def test_webhook_posts_submission_data(self):
        route = respx.post("https://hooks.example.no/lead").mock(return_value=httpx.Response(204))
        submission = Submission(id=7, data={"navn": "Ola"}, status="NEW")
        ctx = context({"navn": "Ola"}, submission=submission)

        await execute_action(None, action("WEBHOOK", url="https://hooks.example.no/lead"), ctx)

        assert route.called
        body = route.calls.last.request.read()
        assert b'"submission_id":7' in body.replace(b" ", b"")

    @respx.mock
    async def test_webhook_failure_raises(self):
        respx.post("https://hooks.example.no/lead").mock(return_value=httpx.Response(500))
        with pytest.raises(AutomationActionError, match="Webhook feilet"):
            await execute_action(None, action("WEBHOOK", url="https://hooks.example.no/lead"), context())


# ==== SUBMISSION RUNS AGAINST THE DATABASE ==== #


async def _automation_with_submission(actions, trigger_type="FORM_SUBMISSION", trigger_config=None):
    organization = await make_organization()
    form = await make_form(organization.id)
    async with get_session() as db:
        template = EmailTemplate(
            organization_id=organization.id,
            name="Velkommen",
            subject="Hei {{navn}}",
            html_content="<p>Takk for henvendelsen, {{navn}}!</p>",
            variables=["navn"],
        )
        db.add(template)
        await db.flush()

        automation = Automation(
            organization_id=organization.id,
            form_id=form.id,
            name="Oppfølging",
            trigger_type=trigger_type,
            trigger_config=trigger_config or {},
        )
        automation.actions = [
            AutomationAction(
                order=index,
                type=definition["type"],
                config=definition.get("config", {}),
                email_template_id=template.id if definition.get("template") else None,
            )
            for index, definition in enumerate(actions)
        ]
        submission = Submission(
            organization_id=organization.id,
            form_id=form.id,
            data={"navn": "Ola", "epost": "ola@example.no", "tjeneste": "web"},
        )
        db.add_all([automation, submission])
        await db.flush()
        return automation.id, submission.id


async def _add_second_automation():
    """Two automations on one form; returns (first_automation_id, submission_id)."""
    first_id, submission_id = await _automation_with_submission([{"type": "ADD_TAG", "config": {"tag": "forste"}}])
    async with get_session() as db:
        submission = await db.get(Submission, submission_id)
        second = Automation(
            organization_id=submission.organization_id,
            form_id=submission.form_id,
            name="Merking",
            trigger_type="FORM_SUBMISSION",
            trigger_config={},
        )
        second.actions = [AutomationAction(order=0, type="ADD_TAG", config={"tag": "andre"})]
        db.add(second)
    return first_id, submission_id


@pytest.mark.unit
class TestRunAutomations:
    """End-to-end automation runs for a stored submission."""

    @respx.mock
    async def test_immediate_email_and_delayed_status(self, database):
        resend = respx.post(settings.RESEND_API_URL).mock(
            return_value=httpx.Response(200, json={"id": "msg_123"})
        )
        set_email_client(EmailClient(api_key="re_test"))
        automation_id, submission_id = await _automation_with_submission([
            {"type": "SEND_EMAIL", "config": {"send_to_submitter": True, "email_field": "epost"}, "template": True},
            {"type": "WAIT_DELAY", "config": {"delay_amount": 3, "delay_unit": "days"}},
            {"type": "UPDATE_SUBMISSION_STATUS", "config": {"status": "CONTACTED"}},
        ])

        assert await run_automations_for_submission(submission_id) == 1
        assert resend.call_count == 1
        assert b"Hei Ola" in resend.calls.last.request.read()

        async with get_session() as db:
            log = (await db.execute(select(EmailLog))).scalar_one()
            assert log.status == "SENT"
            assert log.to_email == "ola@example.no"
            assert log.provider_message_id == "msg_123"

            job = (await db.execute(select(ScheduledJob))).scalar_one()
            assert job.action_index == 2
            assert job.status == "PENDING"
            assert job.payload["submission_data"]["navn"] == "Ola"

            submission = await db.get(Submission, submission_id)
            assert submission.status == "NEW"

            automation = await db.get(Automation, automation_id)
            assert automation.run_count == 1
            activity = (await db.execute(
                select(ActivityLog).where(ActivityLog.action == "automation.executed")
            )).scalar_one()
            assert activity.details["executed"] == 1
            assert activity.details["scheduled"] == 1

    async def test_failed_action_does_not_stop_the_next(self, database):
        set_email_client(EmailClient(api_key=""))
        _, submission_id = await _automation_with_submission([
            {"type": "SEND_EMAIL", "config": {"send_to_submitter": True, "email_field": "epost"}, "template": True},
            {"type": "UPDATE_SUBMISSION_STATUS", "config": {"status": "CONTACTED"}},
        ])

        assert await run_automations_for_submission(submission_id) == 1

        async with get_session() as db:
            log = (await db.execute(select(EmailLog))).scalar_one()
            assert log.status == "FAILED"
            submission = await db.get(Submission, submission_id)
            assert submission.status == "CONTACTED"

    async def test_failing_automation_does_not_stop_the_others(self, database, monkeypatch):
        failing_id, submission_id = await _add_second_automation()
        original = automation_service.execute_automation

        async def execute(db, automation, submission):
            if automation.id == failing_id:
                raise RuntimeError("Mal mangler")
            return await original(db, automation, submission)

        monkeypatch.setattr(automation_service, "execute_automation", execute)

        assert await run_automations_for_submission(submission_id) == 1

        async with get_session() as db:
            submission = await db.get(Submission, submission_id)
            assert submission.meta["tags"] == ["andre"]
            error = (await db.execute(
                select(ActivityLog).where(ActivityLog.action == "automation.error")
            )).scalar_one()
            assert error.resource_id == failing_id
            assert error.details == {"submission_id": submission_id, "error": "Mal mangler"}

    async def test_error_log_failure_does_not_stop_the_others(self, database, monkeypatch):
        failing_id, submission_id = await _add_second_automation()
        original_execute = automation_service.execute_automation
        original_log = automation_service.log_activity

        async def execute(db, automation, submission):
            if automation.id == failing_id:
                raise RuntimeError("Mal mangler")
            return await original_execute(db, automation, submission)

        async def log_activity(db, action, **kwargs):
            if action == "automation.error":
                raise RuntimeError("Databasen er nede")
            return await original_log(db, action, **kwargs)

        monkeypatch.setattr(automation_service, "execute_automation", execute)
        monkeypatch.setattr(automation_service, "log_activity", log_activity)

        assert await run_automations_for_submission(submission_id) == 1

        async with get_session() as db:
            submission = await db.get(Submission, submission_id)
            assert submission.meta["tags"] == ["andre"]

    async def test_field_value_trigger_must_match(self, database):
        _, submission_id = await _automation_with_submission(
            [{"type": "ADD_TAG", "config": {"tag": "seo"}}],
            trigger_type="FIELD_VALUE",
            trigger_config={"field": "tjeneste", "operator": "equals", "value": "seo"},
        )

        assert await run_automations_for_submission(submission_id) == 0

    async def test_unknown_submission_is_ignored(self, database):
        assert await run_automations_for_submission(999) == 0
