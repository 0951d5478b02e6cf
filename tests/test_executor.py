"""Tests for TaskExecutor: every run ends in exactly one signed log."""

import json
import os
import sys

import httpx
import pytest

from cron_claude.audit import AuditLogger
from cron_claude.executor import TaskExecutor, main
from cron_claude.frontmatter import split_document
from cron_claude.models import InvocationMode, LogStatus, NotificationSettings, TaskDefinition
from cron_claude.settings import CronSettings, get_settings


def _cli_task(**overrides) -> TaskDefinition:
    values = {"id": "nightly", "schedule": "0 2 * * *", "instructions": "do it"}
    values.update(overrides)
    return TaskDefinition(**values)


def _python_executor(settings, code: str, **kwargs) -> TaskExecutor:
    """Executor whose CLI tool is this interpreter running `code`."""
    return TaskExecutor(
        settings,
        cli_path=sys.executable,
        cli_arguments=["-c", code, "{instructions_file}"],
        **kwargs,
    )


def _actions(log):
    return [step.action for step in log.steps]


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, title, message, success):
        self.sent.append((title, message, success))


class ExplodingNotifier:
    def notify(self, title, message, success):
        raise RuntimeError("no desktop session")


class TestCliExecution:
    def test_success(self, settings):
        log = _python_executor(settings, "import sys; sys.exit(0)").execute(_cli_task())

        assert log.status is LogStatus.SUCCESS
        actions = _actions(log)
        assert actions[0] == "Task execution started"
        assert "Created temporary task file" in actions
        assert "CLI execution completed successfully" in actions
        assert actions[-1] == "Cleaned up temporary file"
        assert len(list(settings.logs_dir.glob("nightly_*.md"))) == 1

    def test_instructions_reach_the_tool(self, settings):
        code = "import sys; sys.exit(0 if open(sys.argv[1]).read() == 'do it' else 4)"
        log = _python_executor(settings, code).execute(_cli_task())
        assert log.status is LogStatus.SUCCESS

    def test_temporary_file_removed(self, settings):
        log = _python_executor(settings, "import sys; sys.exit(0)").execute(_cli_task())
        created = next(s for s in log.steps if s.action == "Created temporary task file")
        assert created.output
        assert not os.path.exists(created.output)

    def test_nonzero_exit(self, settings):
        log = _python_executor(settings, "import sys; sys.exit(3)").execute(_cli_task())

        assert log.status is LogStatus.FAILURE
        failed = next(s for s in log.steps if s.action == "CLI execution failed")
        assert failed.error == "Process exited with code 3"

    def test_timeout_terminates_process(self, tmp_path):
        settings = CronSettings(home_dir=tmp_path / "home", cli_timeout_seconds=0.5)
        log = _python_executor(settings, "import time; time.sleep(30)").execute(_cli_task())

        assert log.status is LogStatus.FAILURE
        timed_out = next(s for s in log.steps if s.action == "CLI execution timed out")
        assert "timeout" in timed_out.error
        assert _actions(log)[-1] == "Cleaned up temporary file"

    def test_missing_tool(self, settings):
        executor = TaskExecutor(settings, cli_path=str(settings.home_dir / "no-such-cli"))
        log = executor.execute(_cli_task())

        assert log.status is LogStatus.FAILURE
        assert "CLI execution error" in _actions(log)

    def test_placeholder_substitution(self, settings):
        executor = TaskExecutor(settings, cli_path="/opt/claude")
        command = executor.build_cli_command("/tmp/task.md")
        assert command[0] == "/opt/claude"
        assert command[-1] == "Read the task instructions in /tmp/task.md and carry them out."

    def test_configured_command_used_without_path(self, tmp_path):
        settings = CronSettings(home_dir=tmp_path / "home", cli_command="definitely-not-installed")
        assert TaskExecutor(settings).resolve_cli_command() == "definitely-not-installed"


class TestDisabledTask:
    def test_skipped_with_single_step(self, settings):
        executor = TaskExecutor(settings, cli_path="/unused")
        log = executor.execute(_cli_task(enabled=False))

        assert log.status is LogStatus.FAILURE
        assert _actions(log) == ["Task skipped - disabled"]

    def test_log_is_verifiable(self, settings):
        executor = TaskExecutor(settings, cli_path="/unused")
        executor.execute(_cli_task(enabled=False))

        [path] = settings.logs_dir.glob("nightly_*.md")
        assert AuditLogger(settings).verify_file(path).valid


class TestApiExecution:
    def _settings(self, tmp_path, api_key="sk-test") -> CronSettings:
        return CronSettings(home_dir=tmp_path / "home", ANTHROPIC_API_KEY=api_key)

    def test_missing_credential_makes_no_request(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        log = TaskExecutor(settings, http_client=client).execute(
            _cli_task(invocation=InvocationMode.API)
        )

        assert calls == []
        assert log.status is LogStatus.FAILURE
        failed = next(s for s in log.steps if s.action == "API execution failed")
        assert failed.error == "ANTHROPIC_API_KEY environment variable not set"

    def test_credential_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert CronSettings(home_dir=tmp_path).get_api_key() == "sk-env"

    def test_success_records_text(self, tmp_path):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"content": [{"type": "text", "text": "report written"}]}
            )

        settings = self._settings(tmp_path)
        client = httpx.Client(transport=httpx.MockTransport(handler))
        log = TaskExecutor(settings, http_client=client).execute(
            _cli_task(invocation=InvocationMode.API)
        )

        assert log.status is LogStatus.SUCCESS
        assert seen["headers"]["x-api-key"] == "sk-test"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["max_tokens"] == 4096
        assert seen["body"]["messages"] == [{"role": "user", "content": "do it"}]
        completed = next(s for s in log.steps if s.action == "API request completed")
        assert completed.output == "report written"

    def test_non_text_response_is_serialized(self, tmp_path):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"content": []}))
        )
        executor = TaskExecutor(self._settings(tmp_path), http_client=client)
        assert json.loads(executor.request_completion("hi", "sk-test")) == {"content": []}

    def test_error_status(self, tmp_path):
        client = httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(429, text="rate limited"))
        )
        log = TaskExecutor(self._settings(tmp_path), http_client=client).execute(
            _cli_task(invocation=InvocationMode.API)
        )

        assert log.status is LogStatus.FAILURE
        failed = next(s for s in log.steps if s.action == "API execution failed")
        assert failed.error == "API request failed: 429 rate limited"

    def test_transport_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        log = TaskExecutor(self._settings(tmp_path), http_client=client).execute(
            _cli_task(invocation=InvocationMode.API)
        )
        assert log.status is LogStatus.FAILURE
        assert "API execution failed" in _actions(log)


class TestNotifications:
    def test_notifies_when_enabled(self, settings):
        notifier = RecordingNotifier()
        executor = TaskExecutor(settings, cli_path="/unused", notifier=notifier)
        executor.execute(_cli_task(enabled=False, notifications=NotificationSettings(toast=True)))

        [(title, message, success)] = notifier.sent
        assert title == "Task nightly failed"
        assert message == "Task failed: Task is disabled"
        assert success is False

    def test_silent_by_default(self, settings):
        notifier = RecordingNotifier()
        TaskExecutor(settings, cli_path="/unused", notifier=notifier).execute(
            _cli_task(enabled=False)
        )
        assert notifier.sent == []

    def test_failing_notifier_does_not_fail_run(self, settings):
        executor = _python_executor(
            settings, "import sys; sys.exit(0)", notifier=ExplodingNotifier()
        )
        log = executor.execute(_cli_task(notifications=NotificationSettings(toast=True)))
        assert log.status is LogStatus.SUCCESS


class TestLocking:
    def test_lock_released_after_run(self, settings):
        _python_executor(settings, "import sys; sys.exit(0)").execute(_cli_task())
        assert not (settings.locks_dir / "nightly.lock").exists()


class TestMain:
    @pytest.fixture(autouse=True)
    def no_telemetry(self, monkeypatch):
        monkeypatch.setattr("cron_claude.executor.configure_telemetry", lambda: None)

    def test_usage_without_arguments(self, capsys):
        assert main([]) == 2
        assert "Usage" in capsys.readouterr().err

    def test_unparsable_task_file_still_logged(self, tmp_path):
        task_file = tmp_path / "broken.md"
        task_file.write_text("no front matter here\n", encoding="utf-8")

        assert main([str(task_file)]) == 1
        [path] = get_settings().logs_dir.glob("broken_*.md")
        header, body = split_document(path.read_text(encoding="utf-8"))
        assert header["status"] == "failure"
        assert "Task definition could not be loaded" in body

    def test_runs_task_file(self, tmp_path):
        task_file = tmp_path / "paused.md"
        task_file.write_text(
            "---\nid: paused\nschedule: '0 9 * * *'\nenabled: false\n---\nNothing.\n",
            encoding="utf-8",
        )
        assert main([str(task_file)]) == 0
        assert len(list(get_settings().logs_dir.glob("paused_*.md"))) == 1

    def test_unwritable_log_store_still_exits_one(self, tmp_path, monkeypatch, caplog):
        task_file = tmp_path / "broken.md"
        task_file.write_text("no front matter here\n", encoding="utf-8")

        def refuse(self, document, task_id, execution_id):
            raise OSError("read-only file system")

        monkeypatch.setattr("cron_claude.storage.LogStore.save", refuse)
        with caplog.at_level("ERROR"):
            assert main([str(task_file)]) == 1
        assert "read-only file system" in caplog.text
