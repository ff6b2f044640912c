"""
Deployment Sequencer.

Resolves the host for a branch and replaces the container running there:

    1. pull   <image>                                   (failure aborts)
    2. stop   <reserved name>                           (failure tolerated)
    3. rm     <reserved name>                           (failure tolerated)
    4. run -d --name <reserved name> -p <ports> <image> (failure aborts)

All four steps run in order over one remote channel. There are no retries
and no rollback: if step 4 fails the host is left without a container of
that name.
"""
import logging
from typing import Callable, List, Tuple

from site_deploy.exceptions import RemoteCommandFailure
from site_deploy.models import DeployResult, DeployStep, ImageReference, StepResult
from site_deploy.remote import RemoteChannel, SSHChannel
from site_deploy.targets import TargetTable
from site_deploy.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str], RemoteChannel]

TOLERATED_STEPS = frozenset({DeployStep.STOP, DeployStep.REMOVE})


class DeploymentSequencer:
    """Replace the reserved container on the host that serves a branch."""

    def __init__(
        self,
        targets: TargetTable,
        channel_factory: ChannelFactory,
        container_name: str = "app-image",
        port_mapping: str = "80:80",
    ):
        if not container_name:
            raise ValueError("Container name must not be empty")
        self.targets = targets
        self.channel_factory = channel_factory
        self.container_name = container_name
        self.port_mapping = port_mapping

    @classmethod
    def from_settings(cls, settings) -> "DeploymentSequencer":
        return cls(
            targets=TargetTable.from_settings(settings),
            channel_factory=lambda host: SSHChannel.from_settings(host, settings),
            container_name=settings.container_name,
            port_mapping=settings.port_mapping,
        )

    def plan(self, image: ImageReference) -> List[Tuple[DeployStep, List[str]]]:
        """The (step, command) pairs a deployment of `image` executes."""
        return [
            (DeployStep.PULL, ["docker", "pull", image.uri]),
            (DeployStep.STOP, ["docker", "stop", self.container_name]),
            (DeployStep.REMOVE, ["docker", "rm", self.container_name]),
            (DeployStep.RUN, [
                "docker", "run", "-d",
                "--name", self.container_name,
                "-p", self.port_mapping,
                image.uri,
            ]),
        ]

    @log_execution_time
    def deploy(self, branch: str, image: ImageReference) -> DeployResult:
        """Deploy `image` to the host configured for `branch`.

        Raises:
            ValueError: if branch is empty
            UnknownBranch: before any remote command, if branch has no target
            RemoteCommandFailure: if the pull or run step fails
            RemoteChannelError: if the channel to the host cannot be used
        """
        target = self.targets.resolve(branch)
        result = DeployResult(target=target, image=image)

        logger.info(f"Deploying {image.uri} to {target.host_address} (branch '{branch}')")

        with self.channel_factory(target.host_address) as channel:
            for step, command in self.plan(image):
                outcome = channel.run(command)
                tolerated = not outcome.ok and step in TOLERATED_STEPS
                result.steps.append(StepResult(
                    step=step,
                    command=command,
                    exit_code=outcome.exit_code,
                    output=outcome.output,
                    tolerated=tolerated,
                ))

                if outcome.ok:
                    logger.info(f"[{target.host_address}] {step.value}: ok")
                elif tolerated:
                    logger.warning(
                        f"[{target.host_address}] {step.value} exited {outcome.exit_code}, continuing: "
                        f"{outcome.output}"
                    )
                else:
                    logger.error(f"[{target.host_address}] {step.value} exited {outcome.exit_code}: {outcome.output}")
                    raise RemoteCommandFailure(
                        step=step.value,
                        host=target.host_address,
                        exit_code=outcome.exit_code,
                        output=outcome.output,
                    )

        logger.info(f"Container '{self.container_name}' running {image.uri} on {target.host_address}")
        return result
