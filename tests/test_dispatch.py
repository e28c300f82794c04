import pytest
from sqlalchemy import func, select

from manuscript_desk.errors import NotFound, ValidationError
from manuscript_desk.models import Manuscript, ManuscriptStatus, NotificationKind, NotificationLog
from manuscript_desk.services.dispatch import BulkDispatcher, rewrites_from_payload
from manuscript_desk.services.notifications import NO_PHONE_NUMBER
from manuscript_desk.services.rewrite import Draft


async def test_two_templates_three_clients(db, notifier, make_client, make_template):
    t1 = await make_template(title="A {{business_name}}")
    t2 = await make_template(title="B {{business_name}}")
    clients = [await make_client() for _ in range(3)]

    result = await BulkDispatcher(db, notifier).send([t1.id, t2.id], [c.id for c in clients])

    assert len(result.manuscripts) == 6
    assert len({m.group_id for m in result.manuscripts}) == 3
    assert len({m.confirm_token for m in result.manuscripts}) == 6
    assert all(m.status == ManuscriptStatus.pending for m in result.manuscripts)
    assert len(result.confirm_links) == 3

    for template in (t1, t2):
        await db.refresh(template)
        assert template.send_count == 3

    # one message per client, pointing at the first template's manuscript
    assert result.notification.total == 3
    assert len(notifier.sent) == 3
    by_id = {m.id: m for m in result.manuscripts}
    for link in result.confirm_links:
        assert len(link.manuscript_ids) == 2
        rep = by_id[link.manuscript_ids[0]]
        assert rep.template_id == t1.id
        assert link.confirm_url == f"https://desk.example.com/confirm/{rep.confirm_token}"
        assert {by_id[i].group_id for i in link.manuscript_ids} == {link.group_id}


async def test_placeholders_are_rendered_per_client(db, notifier, make_client, make_template):
    template = await make_template()
    client = await make_client(name="ABC Academy", region="Gangnam")

    result = await BulkDispatcher(db, notifier).send([template.id], [client.id])

    manuscript = result.manuscripts[0]
    assert manuscript.title == "Gangnam ABC Academy 겨울방학 특강"
    assert "{{" not in manuscript.content


async def test_rewrites_override_rendered_text(db, notifier, make_client, make_template):
    template = await make_template()
    a = await make_client()
    b = await make_client()
    rewrites = {(template.id, a.id): Draft(title="rewritten", content="")}

    result = await BulkDispatcher(db, notifier).send([template.id], [a.id, b.id], rewrites)

    by_client = {m.client_id: m for m in result.manuscripts}
    assert by_client[a.id].title == "rewritten"
    # empty rewritten fields fall back to the rendered template
    assert by_client[a.id].content.startswith("Gangnam")
    assert by_client[b.id].title.startswith("Gangnam")


async def test_inactive_and_unknown_clients_are_skipped(db, notifier, make_client, make_template):
    template = await make_template()
    active = await make_client()
    inactive = await make_client(is_active=False)

    result = await BulkDispatcher(db, notifier).send([template.id], [active.id, inactive.id, 9999])

    assert [m.client_id for m in result.manuscripts] == [active.id]
    await db.refresh(template)
    assert template.send_count == 1


async def test_no_valid_clients(db, notifier, make_client, make_template):
    template = await make_template()
    inactive = await make_client(is_active=False)

    with pytest.raises(NotFound):
        await BulkDispatcher(db, notifier).send([template.id], [inactive.id])
    assert await db.scalar(select(func.count(Manuscript.id))) == 0


async def test_template_limits(db, notifier, make_client, make_template):
    client = await make_client()
    ids = [(await make_template()).id for _ in range(3)]
    dispatcher = BulkDispatcher(db, notifier)

    with pytest.raises(ValidationError):
        await dispatcher.send([], [client.id])
    with pytest.raises(ValidationError):
        await dispatcher.send(ids, [client.id])
    with pytest.raises(ValidationError):
        await dispatcher.send(ids[:1], [])
    with pytest.raises(NotFound):
        await dispatcher.send([4242], [client.id])


async def test_notification_failures_do_not_fail_dispatch(db, notifier, make_client, make_template):
    template = await make_template()
    no_phone = await make_client(contact=None)
    rejected = await make_client(contact="01099998888")
    ok = await make_client()
    notifier.fail_phones.add("01099998888")

    result = await BulkDispatcher(db, notifier).send([template.id], [no_phone.id, rejected.id, ok.id])

    assert len(result.manuscripts) == 3
    summary = result.notification.summary()
    assert summary["total"] == 3
    assert summary["success"] == 1
    assert summary["failed"] == 2
    errors = {e["client_id"]: e["error"] for e in summary["errors"]}
    assert errors[no_phone.id] == NO_PHONE_NUMBER
    assert errors[rejected.id] == "K105: rejected"

    logs = (await db.execute(select(NotificationLog).order_by(NotificationLog.id))).scalars().all()
    assert [log.success for log in logs] == [False, False, True]
    assert all(log.kind == NotificationKind.confirm_request for log in logs)


async def test_legacy_single_template_is_ungrouped(db, notifier, make_client, make_template):
    template = await make_template()
    a = await make_client()
    b = await make_client()

    result = await BulkDispatcher(db, notifier).send_single(template.id, [a.id, b.id])

    assert len(result.manuscripts) == 2
    assert all(m.group_id is None for m in result.manuscripts)
    await db.refresh(template)
    assert template.send_count == 2


async def test_custom_send_creates_templateless_manuscript(db, notifier, make_client):
    client = await make_client()

    result = await BulkDispatcher(db, notifier).send_custom(client.id, "맞춤 제목", "맞춤 본문", topic="봄 신학기")

    manuscript = result.manuscripts[0]
    assert manuscript.template_id is None
    assert manuscript.group_id is None
    assert result.confirm_links[0].manuscript_ids == [manuscript.id]
    assert notifier.sent[0]["phone"] == client.contact

    with pytest.raises(NotFound):
        await BulkDispatcher(db, notifier).send_custom(9999, "t", "c")
    with pytest.raises(ValidationError):
        await BulkDispatcher(db, notifier).send_custom(client.id, "", "c")


def test_rewrites_from_payload_nested_and_legacy():
    nested = rewrites_from_payload({"3": {"7": {"title": "T", "content": "C"}, "8": None}})
    assert nested == {(3, 7): Draft(title="T", content="C")}

    legacy = rewrites_from_payload({"7": {"title": "T"}}, legacy_template_id=3)
    assert legacy == {(3, 7): Draft(title="T", content="")}

    assert rewrites_from_payload(None) == {}
    with pytest.raises(ValidationError):
        rewrites_from_payload({"x": {"7": {"title": "T"}}})
