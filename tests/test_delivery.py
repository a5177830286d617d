import pytest
import pytest_asyncio
from sqlalchemy import select

from orgcal.core.delivery import BaseEmailProvider, BasePushProvider, SubscriptionGone, get_email_provider
from orgcal.core.notifications import models as n
from orgcal.core.notifications.delivery import deliver_notification, should_email
from orgcal.core.notifications.models import Notification
from orgcal.core.settings.service import SettingsService
from orgcal.core.users.models import PushSubscription, User


class RecordingEmail(BaseEmailProvider):
    name = "recording"

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send(self, to, subject, body):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((to, subject))


class RecordingPush(BasePushProvider):
    name = "recording"

    def __init__(self, gone=()):
        self.sent = []
        self.gone = set(gone)

    async def send(self, subscription, payload):
        if subscription["endpoint"] in self.gone:
            raise SubscriptionGone(subscription["endpoint"])
        self.sent.append((subscription["endpoint"], payload["data"]["notificationId"]))


@pytest_asyncio.fixture
async def note(db_session, org) -> Notification:
    row = Notification(user_id=org.bob.id, type=n.EVENT_UPDATED, title="Event updated", message="m")
    db_session.add(row)
    db_session.add_all([
        PushSubscription(user_id=org.bob.id, endpoint="https://push/a", p256dh="k", auth="a"),
        PushSubscription(user_id=org.bob.id, endpoint="https://push/b", p256dh="k", auth="a"),
    ])
    await db_session.flush()
    return row


async def test_email_needs_every_switch(db_session, org):
    user = await db_session.get(User, org.bob.id)
    assert await should_email(db_session, user, n.EVENT_UPDATED) is False

    await SettingsService(db_session).update({"email_enabled": True})
    assert await should_email(db_session, user, n.EVENT_UPDATED) is True

    user.email_preferences = {n.EVENT_UPDATED: False}
    assert await should_email(db_session, user, n.EVENT_UPDATED) is False
    assert await should_email(db_session, user, n.EVENT_DELETED) is True

    user.email_notifications_enabled = False
    assert await should_email(db_session, user, n.EVENT_DELETED) is False


async def test_push_and_prune(db_session, note):
    await SettingsService(db_session).update({"email_enabled": True})
    email, push = RecordingEmail(), RecordingPush(gone={"https://push/b"})

    outcome = await deliver_notification(db_session, note.id, email=email, push=push)
    assert outcome == {"email": True, "push": 1}
    assert email.sent == [("bob@example.com", "Event updated")]
    assert push.sent == [("https://push/a", note.id)]
    endpoints = (await db_session.scalars(select(PushSubscription.endpoint))).all()
    assert endpoints == ["https://push/a"]


async def test_channel_failure_is_swallowed(db_session, note):
    await SettingsService(db_session).update({"email_enabled": True})
    outcome = await deliver_notification(db_session, note.id, email=RecordingEmail(fail=True), push=RecordingPush())
    assert outcome == {"email": False, "push": 2}


async def test_missing_notification(db_session, org):
    assert await deliver_notification(db_session, 12345) == {"email": False, "push": 0}


def test_unknown_provider():
    with pytest.raises(ValueError):
        get_email_provider("carrier-pigeon")


async def test_noop_providers_keep_a_short_private_history():
    from orgcal.core.delivery import get_push_provider
    from orgcal.core.delivery.noop import RECENT_LIMIT

    first, second = get_email_provider("noop"), get_email_provider("noop")
    for i in range(RECENT_LIMIT + 5):
        await first.send("bob@example.com", f"subject {i}", "body")
    assert len(first.recent) == RECENT_LIMIT
    assert first.recent[-1][1] == f"subject {RECENT_LIMIT + 4}"
    assert len(second.recent) == 0

    push = get_push_provider("noop")
    await push.send({"endpoint": "https://push/a"}, {"title": "t"})
    assert list(push.recent) == [("https://push/a", {"title": "t"})]
    assert len(get_push_provider("noop").recent) == 0
