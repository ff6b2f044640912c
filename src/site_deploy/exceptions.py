"""Errors raised by the pipeline stages and the deployment sequencer."""
from typing import Optional


class DeployError(Exception):
    """Base class for every error that fails a pipeline run."""
    pass


class UnknownBranch(DeployError):
    """Raised when a branch has no entry in the target table."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"No deploy target configured for branch '{branch}'")


class RemoteCommandFailure(DeployError):
    """Raised when a non-tolerated remote step exits non-zero."""

    def __init__(self, step: str, host: str, exit_code: int, output: str = ""):
        self.step = step
        self.host = host
        self.exit_code = exit_code
        self.output = output
        super().__init__(
            f"Remote step '{step}' failed on {host} with exit code {exit_code}: {output.strip()}"
        )


class RemoteChannelError(DeployError):
    """Raised when the remote command channel itself cannot be used."""

    def __init__(self, host: str, message: str):
        self.host = host
        super().__init__(f"Remote channel to {host} failed: {message}")


class ScanFailure(DeployError):
    """Raised by the pipeline when an enforced vulnerability scan fails."""

    def __init__(self, result):
        self.result = result
        super().__init__(
            f"Vulnerability scan failed for {result.image} (exit code {result.exit_code})"
        )


class BuildFailure(DeployError):
    """Raised when the image build exits non-zero."""

    def __init__(self, image: str, exit_code: int, output: Optional[str] = None):
        self.image = image
        self.exit_code = exit_code
        self.output = output or ""
        super().__init__(f"Image build failed for {image} with exit code {exit_code}")


class RegistryError(DeployError):
    """Raised when registry login or push fails."""
    pass
