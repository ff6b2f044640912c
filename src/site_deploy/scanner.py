"""Vulnerability scan gate (trivy)."""
import logging
import shutil
import subprocess

from site_deploy.models import ImageReference, ScanResult

logger = logging.getLogger(__name__)

# trivy exits with this code when findings at the requested severity exist
FINDINGS_EXIT_CODE = 1


class VulnerabilityScanner:
    """Scan an image and hand the result back to the caller.

    The scanner never decides whether a failed scan stops the pipeline; the
    caller inspects `ScanResult.passed`.
    """

    def __init__(self, severity: str = "HIGH,CRITICAL", executable: str = "trivy"):
        self.severity = severity
        self.executable = executable

    @classmethod
    def from_settings(cls, settings) -> "VulnerabilityScanner":
        return cls(severity=settings.scan_severity)

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def command(self, image: ImageReference) -> list:
        return [
            self.executable, "image",
            "--exit-code", str(FINDINGS_EXIT_CODE),
            "--severity", self.severity,
            "--no-progress",
            image.uri,
        ]

    def scan(self, image: ImageReference) -> ScanResult:
        logger.info(f"Scanning {image.uri} for {self.severity} vulnerabilities")
        try:
            result = subprocess.run(self.command(image), capture_output=True, text=True)
        except FileNotFoundError:
            logger.error(f"{self.executable} not found on PATH")
            return ScanResult(image=image.uri, exit_code=127, output=f"{self.executable} not found on PATH")

        scan_result = ScanResult(
            image=image.uri,
            exit_code=result.returncode,
            output=(result.stdout or "") + (result.stderr or ""),
        )
        if scan_result.passed:
            logger.info(f"Scan passed for {image.uri}")
        else:
            logger.warning(f"Scan failed for {image.uri} (exit code {scan_result.exit_code})")
        return scan_result
