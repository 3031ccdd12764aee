"""Tests for task identity resolution and descriptor building."""

import logging

from schedule_monitor.monitor.identity import build_descriptors, resolve_name
from schedule_monitor.monitor.models import TaskType
from schedule_monitor.schedule import TaskDeclaration


class SendInvoices:
    def handle(self) -> None:
        pass


JOB_NAME = f"{SendInvoices.__module__}.SendInvoices"


def _declaration(kind: TaskType = TaskType.COMMAND, action=None, **kwargs) -> TaskDeclaration:
    return TaskDeclaration(kind=kind, action=action or "dummy", **kwargs)


# -- resolve_name --------------------------------------------------------------


def test_explicit_name_wins() -> None:
    declaration = _declaration(TaskType.COMMAND, "reports:send --force", monitor_name="reports")
    assert resolve_name(declaration) == "reports"


def test_explicit_name_returned_verbatim() -> None:
    declaration = _declaration(TaskType.CLOSURE, lambda: None, monitor_name="My Closure ")
    assert resolve_name(declaration) == "My Closure "


def test_command_named_after_command() -> None:
    assert resolve_name(_declaration(TaskType.COMMAND, "dummy")) == "dummy"


def test_shell_named_after_command_line() -> None:
    assert resolve_name(_declaration(TaskType.SHELL, " ./backup.sh --full ")) == "./backup.sh --full"


def test_job_class_named_after_class() -> None:
    assert resolve_name(_declaration(TaskType.JOB, SendInvoices)) == JOB_NAME


def test_job_instance_named_after_class() -> None:
    assert resolve_name(_declaration(TaskType.JOB, SendInvoices())) == JOB_NAME


def test_job_dotted_path_kept() -> None:
    assert resolve_name(_declaration(TaskType.JOB, "app.jobs.SendInvoices")) == "app.jobs.SendInvoices"


def test_closure_without_name_is_not_monitored() -> None:
    assert resolve_name(_declaration(TaskType.CLOSURE, lambda: "a closure has no name")) is None


def test_blank_explicit_name_falls_back() -> None:
    assert resolve_name(_declaration(TaskType.COMMAND, "dummy", monitor_name="  ")) == "dummy"
    assert resolve_name(_declaration(TaskType.CLOSURE, lambda: 1, monitor_name="")) is None


def test_empty_command_has_no_name() -> None:
    declaration = TaskDeclaration(kind=TaskType.COMMAND, action="   ")
    assert resolve_name(declaration) is None


def test_resolution_is_deterministic() -> None:
    declaration = _declaration(TaskType.JOB, SendInvoices)
    assert resolve_name(declaration) == resolve_name(declaration)


# -- build_descriptors ---------------------------------------------------------


def test_build_descriptors_keeps_declaration_order() -> None:
    descriptors = build_descriptors(
        [
            _declaration(TaskType.COMMAND, "b", cron="* * * * *", timezone="UTC"),
            _declaration(TaskType.COMMAND, "a", cron="0 0 * * *", timezone="UTC"),
        ]
    )
    assert [d.name for d in descriptors] == ["b", "a"]
    assert descriptors[1].cron_expression == "0 0 * * *"
    assert descriptors[1].kind is TaskType.COMMAND


def test_build_descriptors_skips_unnamed_closures() -> None:
    descriptors = build_descriptors([_declaration(TaskType.CLOSURE, lambda: 1)])
    assert descriptors == []


def test_build_descriptors_default_grace_time() -> None:
    descriptors = build_descriptors(
        [
            _declaration(TaskType.COMMAND, "a"),
            _declaration(TaskType.COMMAND, "b", grace_time_in_minutes=15),
            _declaration(TaskType.COMMAND, "c", grace_time_in_minutes=0),
        ],
        default_grace_time_in_minutes=7,
    )
    assert [d.grace_time_in_minutes for d in descriptors] == [7, 15, 0]


def test_build_descriptors_timezone_defaults_to_utc() -> None:
    (descriptor,) = build_descriptors([_declaration(TaskType.COMMAND, "a")])
    assert descriptor.timezone == "UTC"


def test_build_descriptors_skips_invalid_cron(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        descriptors = build_descriptors(
            [
                _declaration(TaskType.COMMAND, "broken", cron="99 * * * *"),
                _declaration(TaskType.COMMAND, "fine", cron="* * * * *"),
            ]
        )
    assert [d.name for d in descriptors] == ["fine"]
    assert "broken" in caplog.text


def test_build_descriptors_skips_invalid_timezone(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        descriptors = build_descriptors(
            [_declaration(TaskType.COMMAND, "a", timezone="Nowhere/Land")]
        )
    assert descriptors == []
    assert "unknown timezone" in caplog.text


def test_build_descriptors_skips_negative_grace_time() -> None:
    descriptors = build_descriptors([_declaration(TaskType.COMMAND, "a", grace_time_in_minutes=-1)])
    assert descriptors == []


def test_build_descriptors_keeps_unmonitored_flag() -> None:
    (descriptor,) = build_descriptors([_declaration(TaskType.COMMAND, "a", monitor=False)])
    assert descriptor.monitored is False
