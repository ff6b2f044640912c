import pytest
from pydantic import ValidationError

from site_deploy.exceptions import RegistryError
from site_deploy.settings import Settings, get_settings
from tests.fixtures.aws_fixtures import NoCredentialsSTS


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("DEPLOY_TARGETS", "REGISTRY_TYPE", "SCAN_GATE", "NOTIFY_BACKEND", "PORT_MAPPING",
                "AWS_DEFAULT_REGION", "REGISTRY_URL", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


def test_defaults(clean_env):
    settings = Settings(_env_file=None)

    assert settings.container_name == "app-image"
    assert settings.port_mapping == "80:80"
    assert settings.deploy_targets == {}
    assert settings.scan_gate == "enforce"
    assert settings.registry_type == "ecr"


def test_deploy_targets_from_json_env(clean_env):
    clean_env.setenv("DEPLOY_TARGETS", '{"dev": "10.0.0.10", "main": "10.0.0.30"}')

    settings = Settings(_env_file=None)

    assert settings.deploy_targets == {"dev": "10.0.0.10", "main": "10.0.0.30"}


def test_empty_deploy_targets_env(clean_env):
    clean_env.setenv("DEPLOY_TARGETS", "")

    assert Settings(_env_file=None).deploy_targets == {}


def test_malformed_deploy_targets_env(clean_env):
    clean_env.setenv("DEPLOY_TARGETS", "{dev")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_aws_region_alias(clean_env):
    clean_env.setenv("AWS_DEFAULT_REGION", "eu-west-1")
    assert Settings(_env_file=None).aws_region == "eu-west-1"


@pytest.mark.parametrize("field,value", [
    ("registry_type", "dockerhub"),
    ("scan_gate", "ignore"),
    ("notify_backend", "slack"),
    ("port_mapping", "eighty"),
    ("log_level", "LOUD"),
])
def test_unknown_options_are_rejected(clean_env, field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_registry_host(make_settings):
    assert make_settings().registry_host == "registry.example.com"
    assert make_settings(registry_type="ecr", registry_url=None).registry_host == \
        "123456789012.dkr.ecr.us-east-1.amazonaws.com"


def test_generic_registry_without_url(make_settings):
    with pytest.raises(ValueError):
        make_settings(registry_url=None).registry_host


def test_ecr_account_from_sts(mocked_aws, clean_env):
    clean_env.delenv("AWS_ACCOUNT_ID", raising=False)
    settings = Settings(_env_file=None)

    assert settings.account_id == "123456789012"


def test_masked_dict_hides_secrets(make_settings):
    data = make_settings().masked_dict()

    assert data["registry_password"] == "****"
    assert data["registry_username"] == "ci"


def test_ecr_account_lookup_without_credentials(clean_env):
    clean_env.delenv("AWS_ACCOUNT_ID", raising=False)
    clean_env.setattr("site_deploy.aws_clients.get_sts_client", lambda: NoCredentialsSTS())
    settings = Settings(_env_file=None)

    with pytest.raises(RegistryError, match="account id"):
        settings.registry_host
