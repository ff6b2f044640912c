import pytest

from site_deploy.settings import Settings
from tests.consts import TEST_ACCOUNT_ID, TEST_REGISTRY, TEST_TARGETS
from tests.fixtures.aws_fixtures import aws_credentials, mocked_aws  # noqa: F401
from tests.fixtures.remote_fixtures import channel_factory, sequencer, target_table  # noqa: F401
from tests.fixtures.subprocess_fixtures import fake_subprocess, site_context  # noqa: F401


@pytest.fixture
def make_settings():
    """Build Settings without reading .env files."""
    def _make(**overrides):
        values = {
            "deploy_targets": dict(TEST_TARGETS),
            "registry_type": "generic",
            "registry_url": TEST_REGISTRY,
            "registry_username": "ci",
            "registry_password": "secret",
            "notify_backend": "log",
            "AWS_ACCOUNT_ID": TEST_ACCOUNT_ID,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make
