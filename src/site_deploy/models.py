"""
Records passed between pipeline stages.

Everything here is created at the start of a pipeline run and discarded at
its end; nothing is persisted across runs.
"""
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Docker tags: [A-Za-z0-9_][A-Za-z0-9_.-]{0,127}
_TAG_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
MAX_TAG_LENGTH = 128


class DeployStep(str, Enum):
    """Remote steps of a deployment, in execution order."""
    PULL = "pull"
    STOP = "stop"
    REMOVE = "rm"
    RUN = "run"


class PipelineStage(str, Enum):
    """Stages of a pipeline run, in execution order."""
    BUILD = "build"
    SCAN = "scan"
    LOGIN = "login"
    PUSH = "push"
    DEPLOY = "deploy"


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class DeployTarget:
    """A branch and the host that serves it."""
    branch_name: str
    host_address: str


@dataclass(frozen=True)
class ImageReference:
    """Immutable reference to a built image."""
    registry: str
    name: str
    tag: str

    def __post_init__(self):
        if not self.name:
            raise ValueError("Image name must not be empty")
        if not self.tag:
            raise ValueError("Image tag must not be empty")

    @classmethod
    def for_build(cls, registry: str, name: str, branch: str, build_id: int) -> "ImageReference":
        """Build the reference for a pipeline run: tag is '<branch>-<build_id>'.

        Characters docker does not accept in tags (e.g. '/' in 'feature/x')
        are replaced with '-'. Long branch names are shortened so the
        tag stays within 128 characters and always ends in the build id.
        """
        if not branch:
            raise ValueError("Branch name must not be empty")
        build_number = int(build_id)
        if build_number < 0:
            raise ValueError(f"Build id must be non-negative, got {build_id}")

        suffix = f"-{build_number}"
        prefix = _TAG_INVALID_CHARS.sub("-", branch)[:MAX_TAG_LENGTH - len(suffix)]
        if prefix[0] in ".-":
            prefix = f"_{prefix[1:]}"
        return cls(registry=registry, name=name, tag=prefix + suffix)

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parse 'registry/name:tag' (registry optional, tag defaults to 'latest')."""
        remainder = reference
        registry = ""
        first, sep, rest = reference.partition("/")
        if sep and ("." in first or ":" in first or first == "localhost"):
            registry, remainder = first, rest

        name, sep, tag = remainder.rpartition(":")
        if not sep or "/" in tag:
            name, tag = remainder, "latest"
        return cls(registry=registry, name=name, tag=tag)

    @property
    def uri(self) -> str:
        """Full reference used by docker: registry/name:tag."""
        if self.registry:
            return f"{self.registry}/{self.name}:{self.tag}"
        return f"{self.name}:{self.tag}"

    def __str__(self) -> str:
        return self.uri


@dataclass
class CommandResult:
    """Outcome of one command executed on a remote host."""
    command: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return (self.stdout + self.stderr).strip()


@dataclass
class StepResult:
    """Outcome of one deployment step."""
    step: DeployStep
    command: List[str]
    exit_code: int
    output: str = ""
    tolerated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class DeployResult:
    """Outcome of a successful deployment."""
    target: DeployTarget
    image: ImageReference
    steps: List[StepResult] = field(default_factory=list)

    @property
    def commands(self) -> List[List[str]]:
        return [s.command for s in self.steps]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'branch': self.target.branch_name,
            'host': self.target.host_address,
            'image': self.image.uri,
            'steps': [
                {
                    'step': s.step.value,
                    'command': s.command,
                    'exit_code': s.exit_code,
                    'tolerated': s.tolerated,
                }
                for s in self.steps
            ],
        }


@dataclass
class ScanResult:
    """Result of the vulnerability scan. Callers must inspect `passed`."""
    image: str
    exit_code: int
    output: str = ""

    @property
    def passed(self) -> bool:
        return self.exit_code == 0


@dataclass
class PipelineReport:
    """Binary outcome of one pipeline run."""
    branch: str
    build_id: int
    image: Optional[ImageReference] = None
    target: Optional[DeployTarget] = None
    status: RunStatus = RunStatus.SUCCESS
    completed_stages: List[PipelineStage] = field(default_factory=list)
    failed_stage: Optional[PipelineStage] = None
    error: Optional[str] = None
    scan: Optional[ScanResult] = None
    deploy: Optional[DeployResult] = None
    warnings: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @property
    def host(self) -> Optional[str]:
        return self.target.host_address if self.target else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'branch': self.branch,
            'build_id': self.build_id,
            'image': self.image.uri if self.image else None,
            'host': self.host,
            'status': self.status.value,
            'completed_stages': [s.value for s in self.completed_stages],
            'failed_stage': self.failed_stage.value if self.failed_stage else None,
            'error': self.error,
            'scan': {**asdict(self.scan), 'passed': self.scan.passed} if self.scan else None,
            'deploy': self.deploy.to_dict() if self.deploy else None,
            'warnings': list(self.warnings),
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }
