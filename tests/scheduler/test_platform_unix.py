"""Tests for the crontab adapter."""

import os

import pytest

from cron_claude.errors import NativeSchedulerError, RegistrationError
from cron_claude.scheduler.native import NativeAction
from cron_claude.scheduler.platform_unix import (
    CrontabScheduler,
    is_process_running,
    trigger_schedule,
)
from cron_claude.scheduler.registrar import SchedulerRegistrar
from cron_claude.scheduler.triggers import (
    DailyTrigger,
    MonthlyTrigger,
    OnceTrigger,
    StartupTrigger,
    WeeklyTrigger,
)
from cron_claude.settings import CronSettings

ACTION = NativeAction(
    executable="/usr/bin/python3",
    arguments=["-m", "cron_claude", "/home/alice/tasks/report.md"],
    working_directory="/opt/cron claude",
)
ENTRY = (
    "0 9 * * * cd '/opt/cron claude' && /usr/bin/python3 -m cron_claude "
    "/home/alice/tasks/report.md # cron-claude:CronClaude_report"
)


@pytest.fixture
def crontab(fake_runner) -> CrontabScheduler:
    return CrontabScheduler(runner=fake_runner, user="alice")


class TestTriggerSchedule:
    def test_daily(self):
        assert trigger_schedule(DailyTrigger(time="09:05")) == "5 9 * * *"

    def test_weekly(self):
        trigger = WeeklyTrigger(time="08:30", days=("SUN", "MON", "FRI"))
        assert trigger_schedule(trigger) == "30 8 * * 0,1,5"

    def test_monthly(self):
        trigger = MonthlyTrigger(time="06:00", days_of_month=(1, 15))
        assert trigger_schedule(trigger) == "0 6 1,15 * *"

    def test_startup(self):
        assert trigger_schedule(StartupTrigger()) == "@reboot"

    def test_once_unsupported(self):
        with pytest.raises(NativeSchedulerError):
            trigger_schedule(OnceTrigger(date="2026-12-24"))


class TestRegistrationScript:
    def test_appends_to_empty_crontab(self, crontab, fake_runner):
        fake_runner.queue(1, stderr="no crontab for alice")
        script = crontab.build_registration_script(
            "CronClaude_report", ACTION, DailyTrigger(time="09:00")
        )
        assert script == ENTRY + "\n"

    def test_replaces_existing_entry(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=f"MAILTO=alice\n{ENTRY.replace('0 9', '0 7')}\n")
        script = crontab.build_registration_script(
            "CronClaude_report", ACTION, DailyTrigger(time="09:00")
        )
        assert script == f"MAILTO=alice\n{ENTRY}\n"

    def test_percent_is_escaped(self, crontab, fake_runner):
        action = NativeAction(executable="/bin/echo", arguments=["100%"])
        fake_runner.queue(1, stderr="no crontab for alice")
        script = crontab.build_registration_script("CronClaude_x", action, DailyTrigger())
        assert "100\\%" in script

    def test_crontab_read_failure(self, crontab, fake_runner):
        fake_runner.queue(1, stderr="crontab: unexpected failure")
        with pytest.raises(NativeSchedulerError):
            crontab.read_lines()

    def test_apply_pipes_script(self, crontab, fake_runner):
        crontab.apply_script("x\n")
        assert fake_runner.calls == [{"args": ["crontab", "-"], "input": "x\n"}]

    def test_elevated_command(self, crontab):
        assert crontab.elevated_command("/tmp/s.sh") == ["sudo", "sh", "/tmp/s.sh"]

    def test_elevated_script_needs_no_listing(self, crontab, fake_runner):
        script = crontab.build_elevated_script(
            "CronClaude_report", ACTION, DailyTrigger(time="09:00")
        )

        assert fake_runner.calls == []
        assert script.startswith("#!/bin/sh\nset -e\n")
        assert "marker='# cron-claude:CronClaude_report'" in script
        assert "crontab -u alice -l" in script
        assert script.rstrip().endswith("| crontab -u alice -")
        assert "/home/alice/tasks/report.md # cron-claude:CronClaude_report" in script


class TestQueryAndToggle:
    def test_query_enabled_entry(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=ENTRY + "\n")
        info = crontab.query("CronClaude_report")
        assert info.enabled is True
        assert info.last_run is None
        assert info.next_run is not None

    def test_query_missing(self, crontab, fake_runner):
        fake_runner.queue(0, stdout="# nothing here\n")
        assert crontab.query("CronClaude_report") is None

    def test_disable_comments_out_line(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=ENTRY + "\n")
        crontab.set_enabled("CronClaude_report", False)
        assert fake_runner.calls[-1]["input"] == f"#DISABLED# {ENTRY}\n"

    def test_query_disabled_entry(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=f"#DISABLED# {ENTRY}\n")
        info = crontab.query("CronClaude_report")
        assert info.enabled is False
        assert info.next_run is None

    def test_enable_restores_line(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=f"#DISABLED# {ENTRY}\n")
        crontab.set_enabled("CronClaude_report", True)
        assert fake_runner.calls[-1]["input"] == f"{ENTRY}\n"

    def test_enable_already_enabled_is_noop(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=ENTRY + "\n")
        crontab.set_enabled("CronClaude_report", True)
        assert len(fake_runner.calls) == 1

    def test_delete(self, crontab, fake_runner):
        fake_runner.queue(0, stdout=f"MAILTO=alice\n{ENTRY}\n")
        crontab.delete("CronClaude_report")
        assert fake_runner.calls[-1]["input"] == "MAILTO=alice\n"

    def test_delete_missing(self, crontab, fake_runner):
        fake_runner.queue(0, stdout="")
        with pytest.raises(NativeSchedulerError):
            crontab.delete("CronClaude_report")


class TestElevationThroughSudo:
    def _registrar(self, tmp_path, crontab):
        settings = CronSettings(home_dir=tmp_path / "home", cli_command="not-a-real-cli-tool")
        return SchedulerRegistrar(settings, native=crontab, python_executable="/usr/bin/python3")

    def test_denied_then_sudo(self, tmp_path, crontab, fake_runner):
        fake_runner.queue(1, stderr="no crontab for alice")
        fake_runner.queue(1, stderr="You (alice) are not allowed to use this program (crontab)")
        fake_runner.queue(0)
        fake_runner.queue(0, stdout="0 9 * * * true # cron-claude:CronClaude_report\n")

        self._registrar(tmp_path, crontab).register(
            "report", tmp_path / "report.md", "0 9 * * *", tmp_path
        )

        commands = [call["args"][:4] for call in fake_runner.calls]
        assert commands == [
            ["crontab", "-l"],
            ["crontab", "-"],
            ["sudo", "sh", fake_runner.calls[2]["args"][2]],
            ["crontab", "-l"],
        ]

    def test_sudo_declined(self, tmp_path, crontab, fake_runner):
        fake_runner.queue(1, stderr="no crontab for alice")
        fake_runner.queue(1, stderr="crontab: Permission denied")
        fake_runner.queue(1, stderr="sudo: a password is required")
        fake_runner.queue(1, stderr="no crontab for alice")

        with pytest.raises(RegistrationError):
            self._registrar(tmp_path, crontab).register(
                "report", tmp_path / "report.md", "0 9 * * *", tmp_path
            )
        assert sum(call["args"][0] == "sudo" for call in fake_runner.calls) == 1


    def test_unreadable_crontab_elevates_once(self, tmp_path, crontab, fake_runner):
        """cron.allow/cron.deny refusing `crontab -l` still reaches sudo."""
        denied = "You (alice) are not allowed to use this program (crontab)"
        fake_runner.queue(1, stderr=denied)
        fake_runner.queue(0)
        fake_runner.queue(1, stderr=denied)
        fake_runner.queue(0, stdout="0 9 * * * true # cron-claude:CronClaude_report\n")

        self._registrar(tmp_path, crontab).register(
            "report", tmp_path / "report.md", "0 9 * * *", tmp_path
        )

        commands = [call["args"] for call in fake_runner.calls]
        assert commands[0] == ["crontab", "-l"]
        assert commands[1][:2] == ["sudo", "sh"]
        assert commands[2] == ["crontab", "-l"]
        assert commands[3] == ["sudo", "-n", "crontab", "-u", "alice", "-l"]
        assert sum(args[:2] == ["sudo", "sh"] for args in commands) == 1

    def test_unreadable_crontab_unconfirmed(self, tmp_path, crontab, fake_runner):
        denied = "You (alice) are not allowed to use this program (crontab)"
        fake_runner.queue(1, stderr=denied)
        fake_runner.queue(0)
        fake_runner.queue(1, stderr=denied)
        fake_runner.queue(1, stderr="sudo: a password is required")

        with pytest.raises(RegistrationError, match="Could not confirm"):
            self._registrar(tmp_path, crontab).register(
                "report", tmp_path / "report.md", "0 9 * * *", tmp_path
            )

    def test_elevated_script_removed(self, tmp_path, crontab, fake_runner):
        fake_runner.queue(1, stderr="crontab: Permission denied")
        fake_runner.queue(0)
        fake_runner.queue(0, stdout="0 9 * * * true # cron-claude:CronClaude_report\n")

        self._registrar(tmp_path, crontab).register(
            "report", tmp_path / "report.md", "0 9 * * *", tmp_path
        )
        script_path = fake_runner.calls[1]["args"][2]
        assert script_path.endswith(".sh")
        assert not os.path.exists(script_path)


class TestIsProcessRunning:
    def test_current_process(self):
        assert is_process_running(os.getpid())
