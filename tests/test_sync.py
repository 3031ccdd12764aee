"""End-to-end sync scenarios: declared schedule -> store -> monitor."""

from urllib.parse import quote_plus

from schedule_monitor.monitor.models import MonitoredTask
from schedule_monitor.monitor.reconciler import sync_schedule
from schedule_monitor.monitor.store import MonitoredTaskStore
from schedule_monitor.schedule import Schedule
from tests.conftest import FakeMonitorClient


class TestJob:
    __test__ = False

    def handle(self) -> None:
        pass


TEST_JOB_NAME = f"{TestJob.__module__}.TestJob"


def _expected(task: MonitoredTask | None, **fields) -> None:
    assert task is not None
    for key, value in fields.items():
        assert getattr(task, key) == value, key


async def test_sync_schedule_with_store_and_monitor(
    store: MonitoredTaskStore, monitor: FakeMonitorClient
) -> None:
    schedule = Schedule()
    schedule.command("dummy", cron="every_minute")
    schedule.exec("execute", cron="every_fifteen_minutes")
    schedule.call(lambda: 1 + 1, cron="hourly", monitor_name="my-closure")
    schedule.job(TestJob(), cron="daily", timezone="Asia/Kolkata")

    result = await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert len(await store.list_tasks()) == 4
    assert result.created == ["dummy", "execute", "my-closure", TEST_JOB_NAME]

    common = {
        "grace_time_in_minutes": 5,
        "last_pinged_at": None,
        "last_started_at": None,
        "last_finished_at": None,
    }
    _expected(
        await store.get_task("dummy"),
        type="command",
        cron_expression="* * * * *",
        ping_url="https://ping.ohdear.app/test-ping-url-dummy",
        timezone="UTC",
        **common,
    )
    _expected(
        await store.get_task("execute"),
        type="shell",
        cron_expression="*/15 * * * *",
        ping_url="https://ping.ohdear.app/test-ping-url-execute",
        timezone="UTC",
        **common,
    )
    _expected(
        await store.get_task("my-closure"),
        type="closure",
        cron_expression="0 * * * *",
        ping_url="https://ping.ohdear.app/test-ping-url-my-closure",
        timezone="UTC",
        **common,
    )
    _expected(
        await store.get_task(TEST_JOB_NAME),
        type="job",
        cron_expression="0 0 * * *",
        ping_url="https://ping.ohdear.app/test-ping-url-" + quote_plus(TEST_JOB_NAME),
        timezone="Asia/Kolkata",
        **common,
    )
    for task in await store.list_tasks():
        assert task.registered_on_monitor_at is not None

    assert monitor.get_synced_check_attributes() == [
        {
            "name": "dummy",
            "type": "command",
            "cron_expression": "* * * * *",
            "grace_time_in_minutes": 5,
        },
        {
            "name": "execute",
            "type": "shell",
            "cron_expression": "*/15 * * * *",
            "grace_time_in_minutes": 5,
        },
        {
            "name": "my-closure",
            "type": "closure",
            "cron_expression": "0 * * * *",
            "grace_time_in_minutes": 5,
        },
        {
            "name": TEST_JOB_NAME,
            "type": "job",
            "cron_expression": "0 0 * * *",
            "grace_time_in_minutes": 5,
        },
    ]


async def test_unnamed_closure_is_not_monitored(
    store: MonitoredTaskStore, monitor: FakeMonitorClient
) -> None:
    schedule = Schedule()
    schedule.call(lambda: "a closure has no name", cron="hourly")

    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert await store.list_tasks() == []
    assert monitor.get_synced_check_attributes() == []


async def test_removes_old_tasks(store: MonitoredTaskStore, monitor: FakeMonitorClient) -> None:
    await store.upsert_task(
        MonitoredTask(name="old-task", type="command", cron_expression="* * * * *")
    )
    assert len(await store.list_tasks()) == 1

    schedule = Schedule()
    schedule.command("new", cron="every_minute")
    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert [t.name for t in await store.list_tasks()] == ["new"]


async def test_custom_grace_time(store: MonitoredTaskStore, monitor: FakeMonitorClient) -> None:
    schedule = Schedule()
    schedule.command("dummy", cron="every_minute", grace_time_in_minutes=15)

    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    task = await store.get_task("dummy")
    assert task is not None
    assert task.grace_time_in_minutes == 15
    assert monitor.get_synced_check_attributes()[0]["grace_time_in_minutes"] == 15


async def test_default_grace_time_from_settings(
    store: MonitoredTaskStore, monitor: FakeMonitorClient, monkeypatch
) -> None:
    monkeypatch.setattr("schedule_monitor.config.settings.default_grace_time_in_minutes", 12)
    schedule = Schedule()
    schedule.command("dummy")

    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    task = await store.get_task("dummy")
    assert task is not None
    assert task.grace_time_in_minutes == 12


async def test_do_not_monitor(store: MonitoredTaskStore, monitor: FakeMonitorClient) -> None:
    schedule = Schedule()
    schedule.command("dummy", cron="every_minute", monitor=False)

    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert await store.list_tasks() == []
    assert monitor.get_synced_check_attributes() == []


async def test_removes_tasks_no_longer_monitored(
    store: MonitoredTaskStore, monitor: FakeMonitorClient
) -> None:
    await store.upsert_task(
        MonitoredTask(name="not-monitored", type="command", cron_expression="* * * * *")
    )

    schedule = Schedule()
    schedule.command("not-monitored", cron="every_minute", monitor=False)
    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert await store.list_tasks() == []


async def test_updates_changed_schedule(
    store: MonitoredTaskStore, monitor: FakeMonitorClient
) -> None:
    await store.upsert_task(
        MonitoredTask(name="dummy", type="command", cron_expression="* * * * *")
    )

    schedule = Schedule()
    schedule.command("dummy", cron="daily")
    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    tasks = await store.list_tasks()
    assert len(tasks) == 1
    assert tasks[0].cron_expression == "0 0 * * *"


async def test_no_site_id_skips_monitor(store: MonitoredTaskStore) -> None:
    monitor = FakeMonitorClient(site_id=None)

    schedule = Schedule()
    schedule.command("dummy", cron="daily")
    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert len(await store.list_tasks()) == 1
    assert monitor.get_synced_check_attributes() == []


async def test_sync_twice_is_stable(store: MonitoredTaskStore, monitor: FakeMonitorClient) -> None:
    schedule = Schedule()
    schedule.command("dummy")
    schedule.exec("execute", cron="every_fifteen_minutes")

    await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)
    result = await sync_schedule(schedule, store, monitor, remote_sync_enabled=True)

    assert result.local_changes == 0
    assert len(monitor.synced_checks) == 2
