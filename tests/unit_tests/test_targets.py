import pytest

from site_deploy.exceptions import DeployError, UnknownBranch
from site_deploy.models import DeployTarget
from site_deploy.targets import TargetTable


def test_resolve_known_branch(target_table):
    assert target_table.resolve("staging") == DeployTarget(branch_name="staging", host_address="10.0.0.20")


def test_resolve_unknown_branch_raises(target_table):
    with pytest.raises(UnknownBranch) as exc_info:
        target_table.resolve("release")

    assert isinstance(exc_info.value, DeployError)
    assert "release" in str(exc_info.value)


def test_resolve_empty_branch_raises_value_error(target_table):
    with pytest.raises(ValueError):
        target_table.resolve("")


def test_empty_host_is_rejected():
    with pytest.raises(ValueError, match="empty host"):
        TargetTable({"dev": ""})


def test_empty_branch_name_is_rejected():
    with pytest.raises(ValueError, match="empty branch"):
        TargetTable({"  ": "10.0.0.1"})


def test_table_is_not_affected_by_later_changes_to_source_mapping():
    source = {"dev": "10.0.0.1"}
    table = TargetTable(source)
    source["prod"] = "10.0.0.2"

    assert "prod" not in table
    assert len(table) == 1


def test_branches_are_sorted(target_table):
    assert target_table.branches() == ["dev", "main", "staging"]


def test_from_settings(make_settings):
    table = TargetTable.from_settings(make_settings(deploy_targets={"main": "web-1.example.com"}))

    assert table.resolve("main").host_address == "web-1.example.com"
    assert "dev" not in table
