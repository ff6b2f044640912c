# src/site_deploy/settings.py
import json
from typing import Annotated, Optional, Dict, Any
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from functools import lru_cache

from site_deploy.exceptions import RegistryError


VALID_REGISTRY_TYPES = ["ecr", "generic"]
VALID_SCAN_GATES = ["enforce", "report"]
VALID_NOTIFY_BACKENDS = ["ses", "log", "none"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

DEFAULT_SUBJECT_TEMPLATE = "[{app_name}] Deploy {status}: {branch} #{build_id}"
DEFAULT_BODY_TEMPLATE = (
    "Pipeline run for branch '{branch}' (build {build_id}) finished with status: {status}\n"
    "Image: {image}\n"
    "Host: {host}\n"
    "Error: {error}\n"
)


class Settings(BaseSettings):
    """
    Single source of truth for all pipeline settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from site_deploy.settings import get_settings
        settings = get_settings()
        hosts = settings.deploy_targets
    """

    # Application Settings
    app_name: str = Field(
        default="site-deploy",
        description="Application name used in notifications"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    # Target table: branch name -> host address
    deploy_targets: Annotated[Dict[str, str], NoDecode] = Field(
        default_factory=dict,
        description="JSON object mapping branch names to deployment hosts"
    )

    # Container Configuration
    container_name: str = Field(
        default="app-image",
        description="Reserved container name reused across deployments"
    )

    port_mapping: str = Field(
        default="80:80",
        description="Port mapping passed to docker run (host:container)"
    )

    image_name: str = Field(
        default="app-image",
        description="Repository name of the built image"
    )

    # Registry Configuration
    registry_type: str = Field(
        default="ecr",
        description="Registry type: ecr or generic"
    )

    registry_url: Optional[str] = Field(
        default=None,
        description="Registry host (derived from account and region for ECR)"
    )

    registry_username: Optional[str] = Field(default=None)

    registry_password: Optional[str] = Field(default=None)

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (auto-detected if not provided)"
    )

    # SSH Configuration
    ssh_user: str = Field(default="ec2-user")

    ssh_key_path: Optional[str] = Field(
        default=None,
        description="Private key used for the remote command channel"
    )

    ssh_port: int = Field(default=22)

    ssh_connect_timeout: int = Field(
        default=30,
        description="SSH connect timeout in seconds"
    )

    ssh_strict_host_key_checking: bool = Field(default=True)

    # Scan Configuration
    scan_gate: str = Field(
        default="enforce",
        description="enforce: failed scan aborts the run; report: recorded and logged"
    )

    scan_severity: str = Field(default="HIGH,CRITICAL")

    # Notification Configuration
    notify_backend: str = Field(
        default="log",
        description="Notification backend: ses, log or none"
    )

    notify_recipient: Optional[str] = Field(default=None)

    notify_sender: Optional[str] = Field(default=None)

    notify_subject_template: str = Field(default=DEFAULT_SUBJECT_TEMPLATE)

    notify_body_template: str = Field(default=DEFAULT_BODY_TEMPLATE)

    # Image specification (fixed at build time)
    base_image: str = Field(default="nginx:latest")

    nginx_config_file: str = Field(default="nginx.conf")

    static_dir: str = Field(default="app1/")

    exposed_port: int = Field(default=8080)

    dockerfile: str = Field(default="Dockerfile")

    @field_validator('deploy_targets', mode='before')
    @classmethod
    def parse_deploy_targets(cls, v):
        """Accept the target table as a JSON string as well as a mapping."""
        if isinstance(v, str):
            v = json.loads(v) if v.strip() else {}
        return v

    @field_validator('registry_type')
    @classmethod
    def validate_registry_type(cls, v):
        if v not in VALID_REGISTRY_TYPES:
            raise ValueError(f"Invalid registry_type: {v}. Must be one of {VALID_REGISTRY_TYPES}")
        return v

    @field_validator('scan_gate')
    @classmethod
    def validate_scan_gate(cls, v):
        if v not in VALID_SCAN_GATES:
            raise ValueError(f"Invalid scan_gate: {v}. Must be one of {VALID_SCAN_GATES}")
        return v

    @field_validator('notify_backend')
    @classmethod
    def validate_notify_backend(cls, v):
        if v not in VALID_NOTIFY_BACKENDS:
            raise ValueError(f"Invalid notify_backend: {v}. Must be one of {VALID_NOTIFY_BACKENDS}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v

    @field_validator('port_mapping')
    @classmethod
    def validate_port_mapping(cls, v):
        """Port mapping must look like host:container."""
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Invalid port_mapping: {v}. Expected host:container, e.g. 80:80")
        return v

    @property
    def account_id(self) -> str:
        """Get AWS account ID with auto-detection fallback."""
        if self.aws_account_id:
            return self.aws_account_id

        from site_deploy.aws_clients import get_sts_client
        try:
            return get_sts_client().get_caller_identity()['Account']
        except (BotoCoreError, ClientError) as e:
            raise RegistryError(f"Could not determine AWS account id for the ECR registry: {e}") from e

    @property
    def ecr_registry(self) -> str:
        """Get ECR registry URL."""
        return f"{self.account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    @property
    def registry_host(self) -> str:
        """Registry host images are tagged and pushed against."""
        if self.registry_url:
            return self.registry_url
        if self.registry_type == "ecr":
            return self.ecr_registry
        raise ValueError("registry_url must be set when registry_type is 'generic'")

    def masked_dict(self) -> Dict[str, Any]:
        """Settings as a dictionary with secrets hidden, for display."""
        data = self.model_dump()
        for key in ('registry_password', 'aws_secret_access_key'):
            if data.get(key):
                data[key] = '****'
        return data

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()


def get_settings_with_env_helper(env_file: str = None) -> Settings:
    """
    Get settings instance with env_helper integration.

    Loads the specified .env file using the env_helper before creating the
    Settings instance, so stage-specific files (e.g. '.env.staging') take effect.

    Args:
        env_file: Path to .env file (e.g., '.env.staging')

    Returns:
        Settings instance with loaded environment
    """
    if env_file:
        from site_deploy.env_helper import EnvironmentHelper
        helper = EnvironmentHelper(env_file)
        helper.load_environment()

    # Clear the settings cache and return fresh instance
    get_settings.cache_clear()
    return get_settings()
