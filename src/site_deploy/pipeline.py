"""
Pipeline run: build -> scan -> login -> push -> deploy, then notify.

The outcome of a run is binary. The first failing stage stops the run, the
report records which stage failed and why, and the failure notification is
sent. A notification is sent for every run, success or failure.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from site_deploy.builder import ImageBuilder, ImageSpec
from site_deploy.exceptions import DeployError, ScanFailure
from site_deploy.models import ImageReference, PipelineReport, PipelineStage, RunStatus
from site_deploy.notify import Notifier, NotifierFactory
from site_deploy.registry import RegistryClient
from site_deploy.scanner import VulnerabilityScanner
from site_deploy.sequencer import DeploymentSequencer
from site_deploy.utils.decorators import log_operation

logger = logging.getLogger(__name__)


class PipelineRunner:
    """Run every stage of a pipeline for one branch and build number."""

    def __init__(
        self,
        settings,
        builder: Optional[ImageBuilder] = None,
        scanner: Optional[VulnerabilityScanner] = None,
        registry: Optional[RegistryClient] = None,
        sequencer: Optional[DeploymentSequencer] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.settings = settings
        self.builder = builder or ImageBuilder(ImageSpec.from_settings(settings), dockerfile=settings.dockerfile)
        self.scanner = scanner or VulnerabilityScanner.from_settings(settings)
        self.registry = registry or RegistryClient(settings)
        self.sequencer = sequencer or DeploymentSequencer.from_settings(settings)
        self.notifier = notifier or NotifierFactory.get_notifier(settings)

    def image_for(self, branch: str, build_id: int) -> ImageReference:
        return ImageReference.for_build(
            registry=self.settings.registry_host,
            name=self.settings.image_name,
            branch=branch,
            build_id=build_id,
        )

    @log_operation("Image build")
    def build(self, image: ImageReference, context: Union[str, Path]) -> None:
        self.builder.build(image, context)

    @log_operation("Vulnerability scan")
    def scan(self, report: PipelineReport) -> None:
        result = self.scanner.scan(report.image)
        report.scan = result
        if result.passed:
            return

        if self.settings.scan_gate == "enforce":
            raise ScanFailure(result)

        message = f"Vulnerability scan failed for {result.image} (exit code {result.exit_code}); continuing because SCAN_GATE=report"
        logger.warning(message)
        report.warnings.append(message)

    @log_operation("Registry login")
    def login(self) -> None:
        self.registry.login()

    @log_operation("Image push")
    def push(self, image: ImageReference) -> None:
        self.registry.push(image)

    @log_operation("Deployment")
    def deploy(self, report: PipelineReport) -> None:
        report.target = self.sequencer.targets.resolve(report.branch)
        report.deploy = self.sequencer.deploy(report.branch, report.image)

    def run(
        self,
        branch: str,
        build_id: int,
        context: Union[str, Path] = ".",
        skip_build: bool = False,
        skip_scan: bool = False,
        skip_push: bool = False,
    ) -> PipelineReport:
        """Execute one pipeline run and return its report.

        DeployError (and invalid input) marks the run as failed. Any other
        exception is also recorded and notified, then re-raised.
        """
        report = PipelineReport(branch=branch, build_id=build_id)
        stage = None

        logger.info(f"Pipeline run started: branch={branch} build={build_id}")
        try:
            report.image = self.image_for(branch, build_id)

            stages = [
                (PipelineStage.BUILD, skip_build, lambda: self.build(report.image, context)),
                (PipelineStage.SCAN, skip_scan, lambda: self.scan(report)),
                (PipelineStage.LOGIN, skip_push, self.login),
                (PipelineStage.PUSH, skip_push, lambda: self.push(report.image)),
                (PipelineStage.DEPLOY, False, lambda: self.deploy(report)),
            ]
            for stage, skipped, action in stages:
                if skipped:
                    logger.info(f"Skipping stage: {stage.value}")
                    continue
                action()
                report.completed_stages.append(stage)

        except (DeployError, ValueError) as e:
            self._mark_failed(report, stage, e)
        except Exception as e:
            self._mark_failed(report, stage, e)
            self._finish(report)
            raise
        self._finish(report)
        return report

    def _mark_failed(self, report: PipelineReport, stage: Optional[PipelineStage], error: Exception) -> None:
        report.status = RunStatus.FAILURE
        report.failed_stage = stage
        report.error = str(error)
        where = stage.value if stage else "setup"
        logger.error(f"Pipeline run failed at {where}: {error}")

    def _finish(self, report: PipelineReport) -> None:
        report.finished_at = datetime.now(timezone.utc)
        logger.info(f"Pipeline run finished: {report.status.value}")
        self.notifier.notify(report)


def export_report(report: PipelineReport, path: Union[str, Path]) -> Path:
    """Write the run report as JSON."""
    path = Path(path)
    path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    logger.info(f"Wrote pipeline report to {path}")
    return path
