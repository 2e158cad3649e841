from __future__ import annotations

from claimflow import db, mail
from claimflow.models import User
from claimflow.services.notifications import notify_transition


def test_decision_email_greets_claimant_by_first_name(workflow, submit_claim, org) -> None:
    claim = workflow.reject(submit_claim().id, org.manager_id)

    with mail.record_messages() as outbox:
        assert notify_transition(claim) is True

    assert outbox[0].body.startswith("Hi Eve,")


def test_blank_names_do_not_break_delivery(workflow, submit_claim, org) -> None:
    claim = submit_claim()
    db.session.get(User, org.manager_id).name = "   "
    db.session.commit()

    with mail.record_messages() as outbox:
        assert notify_transition(workflow.get_claim(claim.id)) is True

    assert outbox[0].recipients == ["max@acme.test"]
    assert outbox[0].body.startswith("Hi there,")


def test_notifications_can_be_disabled(app, workflow, submit_claim) -> None:
    app.config["NOTIFICATIONS_ENABLED"] = False

    with mail.record_messages() as outbox:
        assert notify_transition(submit_claim()) is False

    assert outbox == []
