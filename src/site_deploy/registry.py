"""Container registry login and push."""
import base64
import logging
import subprocess
from typing import Any, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from site_deploy.exceptions import RegistryError
from site_deploy.models import ImageReference

logger = logging.getLogger(__name__)


class RegistryClient:
    """Authenticate the local docker client against the registry and push images.

    registry_type 'ecr' fetches a short-lived token through boto3;
    'generic' uses the configured username/password.
    """

    def __init__(self, settings, ecr_client: Optional[Any] = None):
        self.settings = settings
        self.registry_type = settings.registry_type
        self._ecr_client = ecr_client

    @property
    def ecr_client(self):
        if self._ecr_client is None:
            from site_deploy.aws_clients import get_ecr_client
            self._ecr_client = get_ecr_client()
        return self._ecr_client

    def _ecr_credentials(self) -> Tuple[str, str, str]:
        """Return (username, password, endpoint) from an ECR authorization token."""
        try:
            token_response = self.ecr_client.get_authorization_token()
        except (BotoCoreError, ClientError) as e:
            raise RegistryError(f"Could not fetch ECR authorization token: {e}") from e

        token_data = token_response['authorizationData'][0]
        token = base64.b64decode(token_data['authorizationToken']).decode('utf-8')
        username, password = token.split(':', 1)
        return username, password, token_data['proxyEndpoint']

    def _generic_credentials(self) -> Tuple[str, str, str]:
        s = self.settings
        missing = [
            name for name, value in (
                ('REGISTRY_URL', s.registry_url),
                ('REGISTRY_USERNAME', s.registry_username),
                ('REGISTRY_PASSWORD', s.registry_password),
            ) if not value
        ]
        if missing:
            raise RegistryError(f"Generic registry login requires: {', '.join(missing)}")
        return s.registry_username, s.registry_password, s.registry_url

    def login(self) -> str:
        """Log docker in to the registry. Returns the registry endpoint."""
        if self.registry_type == "ecr":
            username, password, endpoint = self._ecr_credentials()
        else:
            username, password, endpoint = self._generic_credentials()

        logger.info(f"Logging in to registry {endpoint} as {username}")
        try:
            result = subprocess.run(
                ["docker", "login", "--username", username, "--password-stdin", endpoint],
                input=password,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            raise RegistryError("docker CLI not found on PATH") from None

        if result.returncode != 0:
            raise RegistryError(f"docker login to {endpoint} failed: {result.stderr.strip()}")

        return endpoint

    def push(self, image: ImageReference) -> None:
        """Push an already built and tagged image."""
        logger.info(f"Pushing image {image.uri}")
        try:
            result = subprocess.run(["docker", "push", image.uri], capture_output=True, text=True)
        except FileNotFoundError:
            raise RegistryError("docker CLI not found on PATH") from None

        if result.returncode != 0:
            raise RegistryError(f"docker push {image.uri} failed: {result.stderr.strip()}")

        logger.info(f"Pushed image: {image.uri}")
