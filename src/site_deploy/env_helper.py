"""
Environment Helper for pipeline runs

Centralizes how environment variables are loaded for a pipeline run. Each
branch may carry its own .env file (e.g. '.env.staging'); this helper loads it
and validates that the variables a stage depends on are present.

Key features:
- Loads environment variables from .env files
- Validates required variables per pipeline stage
- Maps branch names to their .env files
"""

import os
import logging
from typing import Dict, List, Optional
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Variables a stage cannot run without. Stages not listed need nothing extra.
STAGE_REQUIRED_VARS: Dict[str, List[str]] = {
    'deploy': ['DEPLOY_TARGETS'],
    'login-generic': ['REGISTRY_URL', 'REGISTRY_USERNAME', 'REGISTRY_PASSWORD'],
    'notify-ses': ['NOTIFY_RECIPIENT', 'NOTIFY_SENDER'],
}


class EnvironmentHelper:
    """Helper class for managing environment variables across pipeline runs."""

    def __init__(self, env_file: Optional[str] = None, project_root: Optional[Path] = None):
        """
        Initialize EnvironmentHelper.

        Args:
            env_file: Optional path to specific .env file to load
            project_root: Directory relative env files are resolved against
                (defaults to the current working directory)
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.env_file = env_file
        self.loaded_vars: Dict[str, str] = {}

    def load_environment(self) -> Dict[str, str]:
        """
        Load environment variables from .env file.

        Returns:
            Dictionary of loaded environment variables

        Raises:
            FileNotFoundError: if an env file was given but does not exist
        """
        if self.env_file:
            env_path = Path(self.env_file)
            if not env_path.is_absolute():
                env_path = self.project_root / env_path
            if not env_path.exists():
                raise FileNotFoundError(f"Environment file not found: {env_path}")
            load_dotenv(env_path, override=True)
            logger.info(f"Loaded environment from {env_path}")

        self.loaded_vars = dict(os.environ)
        return self.loaded_vars

    def missing_vars(self, required_vars: List[str]) -> List[str]:
        """Return the subset of required_vars that is unset or empty."""
        return [var for var in required_vars if not os.getenv(var)]

    def validate_required_vars(self, required_vars: List[str]) -> bool:
        """
        Validate that all required environment variables are set.

        Args:
            required_vars: List of required variable names

        Returns:
            True if all variables are set, False otherwise
        """
        missing = self.missing_vars(required_vars)

        if missing:
            logger.error(f"Missing required environment variables: {', '.join(missing)}")
            return False

        logger.info("All required environment variables are set")
        return True

    def validate_stage(self, stage: str) -> bool:
        """Validate the variables registered for a pipeline stage."""
        return self.validate_required_vars(STAGE_REQUIRED_VARS.get(stage, []))

    @classmethod
    def detect_env_file_from_branch(cls, branch: str, project_root: Optional[Path] = None) -> Optional[str]:
        """
        Detect the .env file for a branch.

        Args:
            branch: Source branch name
            project_root: Directory to look in (defaults to cwd)

        Returns:
            '.env.<branch>' if it exists, otherwise None
        """
        root = Path(project_root) if project_root else Path.cwd()
        candidate = f".env.{branch}"
        if (root / candidate).exists():
            return candidate
        return None
