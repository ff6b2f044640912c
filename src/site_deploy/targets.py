"""Static branch -> host lookup for deployments."""
import logging
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping

from site_deploy.exceptions import UnknownBranch
from site_deploy.models import DeployTarget

logger = logging.getLogger(__name__)


class TargetTable:
    """Immutable mapping from branch name to deployment host.

    A branch missing from the table is an error; there is no default host.
    """

    def __init__(self, mapping: Mapping[str, str]):
        targets: Dict[str, DeployTarget] = {}
        for branch, host in mapping.items():
            branch = (branch or "").strip()
            host = (host or "").strip()
            if not branch:
                raise ValueError("Target table contains an empty branch name")
            if not host:
                raise ValueError(f"Target table has an empty host for branch '{branch}'")
            targets[branch] = DeployTarget(branch_name=branch, host_address=host)
        self._targets = MappingProxyType(targets)

    @classmethod
    def from_settings(cls, settings) -> "TargetTable":
        """Build the table from the DEPLOY_TARGETS setting."""
        table = cls(settings.deploy_targets)
        logger.debug(f"Loaded target table with {len(table)} branch(es): {table.branches()}")
        return table

    def resolve(self, branch: str) -> DeployTarget:
        """Look up the deploy target for a branch.

        Raises:
            ValueError: if branch is empty
            UnknownBranch: if branch has no target
        """
        if not branch:
            raise ValueError("Branch name must not be empty")
        try:
            return self._targets[branch]
        except KeyError:
            raise UnknownBranch(branch) from None

    def branches(self) -> List[str]:
        return sorted(self._targets)

    def __contains__(self, branch: object) -> bool:
        return branch in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[DeployTarget]:
        return iter(self._targets.values())
