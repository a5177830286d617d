import pytest

from orgcal.core.errors import ValidationFailed
from orgcal.core.notifications import models as n
from orgcal.core.settings.service import SettingsService


async def test_defaults(db_session):
    service = SettingsService(db_session)
    assert await service.reminder_offsets() == [60]
    assert await service.due_soon_threshold_minutes() == 60
    assert await service.overdue_enabled() is True
    assert await service.email_enabled() is False


async def test_update_reports_only_changed_keys(db_session, org):
    service = SettingsService(db_session)
    changed = await service.update(
        {"reminder_times": ["3hour", "30min"], "overdue_enabled": True}, updated_by=org.admin.id
    )
    assert changed == {"reminder_times"}
    assert await service.reminder_offsets() == [30, 180]
    assert await SettingsService(db_session).update({"reminder_times": ["3hour", "30min"]}) == set()


async def test_empty_due_soon_disables_the_badge(db_session):
    service = SettingsService(db_session)
    await service.update({"due_soon_threshold": []})
    assert await service.due_soon_threshold_minutes() == 0


@pytest.mark.parametrize(
    "values",
    [
        {"unknown": 1},
        {"reminder_times": "1hour"},
        {"reminder_times": ["5min"]},
        {"overdue_enabled": "yes"},
        {"notification_config": {n.EVENT_UPDATED: {"scope": "everyone"}}},
        {"notification_config": []},
    ],
)
async def test_update_validation(db_session, values):
    with pytest.raises(ValidationFailed):
        await SettingsService(db_session).update(values)


async def test_notification_config_merges_over_defaults(db_session):
    service = SettingsService(db_session)
    await service.update({"notification_config": {n.EVENT_UPDATED: {"scope": "office"}}})
    assert await service.notification_config(n.EVENT_UPDATED) == {"enabled": True, "scope": "office"}
    assert await service.notification_config(n.EVENT_DELETED) == {"enabled": True, "scope": "department"}
    assert await service.notification_config("SOMETHING_ELSE") == {"enabled": False, "scope": "creator"}


def test_default_notification_config_covers_emitted_types_only():
    from orgcal.core.settings.service import DEFAULTS

    emitted = {
        n.EVENT_REMINDER, n.EVENT_DUE_SOON, n.EVENT_OVERDUE,
        n.EVENT_UPDATED, n.EVENT_COMPLETED, n.EVENT_DELETED, n.EVENT_SHARED,
    }
    assert set(DEFAULTS["notification_config"]) == emitted
