import json

import pytest

from site_deploy.models import PipelineStage, RunStatus
from site_deploy.notify import Notifier
from site_deploy.pipeline import PipelineRunner, export_report
from tests.consts import TEST_REGISTRY


class RecordingNotifier(Notifier):
    def __init__(self):
        super().__init__()
        self.reports = []

    def notify(self, report):
        self.reports.append(report)
        return True

    def send(self, subject, body):
        pass


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_runner(make_settings, sequencer, notifier):
    def _make(**overrides):
        return PipelineRunner(make_settings(**overrides), sequencer=sequencer, notifier=notifier)
    return _make


def test_successful_run(make_runner, site_context, fake_subprocess, channel_factory, notifier):
    report = make_runner().run("staging", 42, context=site_context)

    assert report.status == RunStatus.SUCCESS
    assert report.completed_stages == [
        PipelineStage.BUILD, PipelineStage.SCAN, PipelineStage.LOGIN, PipelineStage.PUSH, PipelineStage.DEPLOY,
    ]
    assert report.image.uri == f"{TEST_REGISTRY}/app-image:staging-42"
    assert report.host == "10.0.0.20"
    assert [c[:2] for c in fake_subprocess.commands] == [
        ["docker", "build"], ["trivy", "image"], ["docker", "login"], ["docker", "push"],
    ]
    assert [c[1] for c in channel_factory.commands] == ["pull", "stop", "rm", "run"]
    assert notifier.reports == [report]
    assert report.finished_at is not None


def test_enforced_scan_failure_aborts(make_runner, site_context, fake_subprocess, channel_factory, notifier):
    fake_subprocess.set_result(["trivy"], returncode=1, stdout="CVE-2024-0001")

    report = make_runner().run("staging", 43, context=site_context)

    assert report.status == RunStatus.FAILURE
    assert report.failed_stage == PipelineStage.SCAN
    assert report.scan is not None and not report.scan.passed
    assert not any(c[:2] == ["docker", "push"] for c in fake_subprocess.commands)
    assert channel_factory.commands == []
    assert notifier.reports[0].status == RunStatus.FAILURE


def test_reported_scan_failure_continues_with_warning(make_runner, site_context, fake_subprocess):
    fake_subprocess.set_result(["trivy"], returncode=1)

    report = make_runner(scan_gate="report").run("staging", 44, context=site_context)

    assert report.status == RunStatus.SUCCESS
    assert not report.scan.passed
    assert len(report.warnings) == 1
    assert "SCAN_GATE=report" in report.warnings[0]


def test_unknown_branch_fails_at_deploy_without_remote_commands(make_runner, site_context, fake_subprocess,
                                                               channel_factory, notifier):
    report = make_runner().run("feature-x", 1, context=site_context)

    assert report.status == RunStatus.FAILURE
    assert report.failed_stage == PipelineStage.DEPLOY
    assert "feature-x" in report.error
    assert channel_factory.channels == []
    assert len(notifier.reports) == 1


def test_build_failure_stops_run(make_runner, site_context, fake_subprocess):
    fake_subprocess.set_result(["docker", "build"], returncode=1)

    report = make_runner().run("dev", 2, context=site_context)

    assert report.failed_stage == PipelineStage.BUILD
    assert report.completed_stages == []
    assert len(fake_subprocess.commands) == 1


def test_remote_run_failure_reports_failure(make_runner, site_context, fake_subprocess, channel_factory):
    channel_factory.exit_codes["run"] = 125

    report = make_runner().run("main", 9, context=site_context)

    assert report.status == RunStatus.FAILURE
    assert report.failed_stage == PipelineStage.DEPLOY
    assert "run" in report.error
    assert report.deploy is None


def test_redeploy_skips_build_scan_push(make_runner, fake_subprocess, channel_factory):
    report = make_runner().run("dev", 5, skip_build=True, skip_scan=True, skip_push=True)

    assert report.succeeded
    assert report.completed_stages == [PipelineStage.DEPLOY]
    assert fake_subprocess.calls == []
    assert channel_factory.commands[0] == ["docker", "pull", f"{TEST_REGISTRY}/app-image:dev-5"]


def test_invalid_configuration_fails_in_setup(make_runner, notifier):
    report = make_runner(registry_url=None).run("dev", 1)

    assert report.status == RunStatus.FAILURE
    assert report.failed_stage is None
    assert "registry_url" in report.error
    assert len(notifier.reports) == 1


def test_unexpected_errors_are_notified_and_reraised(make_runner, site_context, fake_subprocess, notifier):
    runner = make_runner()

    def explode(image, context):
        raise RuntimeError("disk full")

    runner.builder.build = explode

    with pytest.raises(RuntimeError):
        runner.run("dev", 3, context=site_context)

    assert notifier.reports[0].status == RunStatus.FAILURE
    assert notifier.reports[0].failed_stage == PipelineStage.BUILD


def test_export_report(make_runner, site_context, fake_subprocess, tmp_path):
    report = make_runner().run("staging", 42, context=site_context)

    path = export_report(report, tmp_path / "report.json")
    data = json.loads(path.read_text())

    assert data["status"] == "success"
    assert data["deploy"]["host"] == "10.0.0.20"
    assert [s["step"] for s in data["deploy"]["steps"]] == ["pull", "stop", "rm", "run"]


def test_unrenderable_notification_keeps_run_outcome(make_settings, sequencer, channel_factory):
    runner = PipelineRunner(make_settings(notify_body_template="Image: {image.uri}"), sequencer=sequencer)

    report = runner.run("dev", 5, skip_build=True, skip_scan=True, skip_push=True)

    assert report.status == RunStatus.SUCCESS
    assert report.finished_at is not None
