"""
Tests for the entra assessment modules, module loader and CLI.

Covers:
- Each module's data dict (summary, tables, dashboard bits)
- Shared assessment fetched once per run
- Module discovery, skip list and error isolation
- CLI exit codes
"""
import pytest
import argparse
import requests
from unittest.mock import Mock, patch
from datetime import datetime, timedelta, timezone
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import GroupKennel
from groupkennel.core.config import fncDefaultConfig
from groupkennel.core.errors import DirectoryUnavailableError, GraphAuthError
from groupkennel.core.models import ActivitySignal, DirectorySnapshot, GroupRecord, SignalSource
from groupkennel.core.module_loader import fncDiscoverModules, fncRunAllModules, fncRunModule
from groupkennel.core.pipeline import fncRunAssessment
from groupkennel.modules.entra import _assessment
from groupkennel.modules.entra import governance_summary, group_activity, group_inventory, privileged_groups

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
ENTRA_MODULES = ["governance_summary", "group_activity", "group_inventory", "privileged_groups"]


@pytest.fixture
def assessed_args():
    """argparse-style args with a pre-computed assessment attached."""
    groups = [
        GroupRecord(id="a", display_name="Marketing", description="Team", group_types=frozenset(["Unified"]),
                    mail_enabled=True, member_count=10, owner_count=2),
        GroupRecord(id="b", display_name="Tier0", description="Admins", security_enabled=True,
                    is_assignable_to_role=True, member_count=3, owner_count=0),
        GroupRecord(id="c", display_name="Old ACL", security_enabled=True, member_count=0, owner_count=1),
    ]
    snap = DirectorySnapshot(groups=groups, fetched_at=NOW)
    snap.role_assignments = {"b": ["Global Administrator"]}
    snap.signals = [ActivitySignal("a", SignalSource.REPORT_EXPORT, NOW - timedelta(days=2))]
    snap.warnings.append("getTeamsTeamActivityDetail unavailable")

    users = [{"id": "u1", "signInActivity": {"lastSignInDateTime": "2023-01-01T00:00:00Z"}}]
    result = fncRunAssessment(snap, member_fetcher=lambda gid: users)

    args = argparse.Namespace(cfg=fncDefaultConfig(), parallel=None)
    args._assessment = (snap, result)
    return args


class TestModules:

    def test_group_inventory(self, assessed_args):
        data = group_inventory.run(Mock(), assessed_args)

        assert data["summary"]["Total Groups"] == 3
        assert data["summary"]["M365 Groups"] == 1
        assert [r["Id"] for r in data["groups"]] == ["a", "c", "b"]
        assert data["_charts"]["summary"]["labels"] == ["M365", "Security"]
        assert data["fetch_warnings"][0]["Scope"] == "Tenant"

    def test_privileged_groups(self, assessed_args):
        data = privileged_groups.run(Mock(), assessed_args)

        assert [r["Id"] for r in data["privileged_groups"]] == ["b"]
        assert data["privileged_groups"][0]["PrivilegeSource"] == "RoleAssignment+RoleAssignable"
        assert data["summary"]["Privileged Without Owner"] == 1
        assert data["roles_held"] == [{"Role": "Global Administrator", "Groups": 1}]

    def test_group_activity(self, assessed_args):
        data = group_activity.run(Mock(), assessed_args)

        assert {r["Id"] for r in data["requiring_action"]} == {"b", "c"}
        assert data["summary"]["Inactivity Threshold (days)"] == 90
        assert [r["Id"] for r in data["member_sign_in_sample"]] == ["b"]
        assert data["member_sign_in_sample"][0]["InactiveMembers"] == 1

    def test_governance_summary(self, assessed_args):
        data = governance_summary.run(Mock(), assessed_args)

        flags = {r["Flag"]: r["Count"] for r in data["governance_flags"]}
        assert flags["Empty"] == 1
        assert flags["No owner"] == 1
        assert flags["Privileged"] == 1
        assert data["tenant_stats"]["total_groups"] == 3
        assert sum(r["Count"] for r in data["categories"]) == 3


class TestSharedAssessment:

    def test_fetched_once_per_run(self):
        snap = DirectorySnapshot(groups=[GroupRecord(id="a", member_count=1, owner_count=1)], fetched_at=NOW)
        adapter = Mock()
        adapter.build_snapshot.return_value = snap
        adapter.fetch_member_sign_ins.return_value = []
        args = argparse.Namespace(cfg=fncDefaultConfig())

        with patch.object(_assessment, "DirectoryFetchAdapter", return_value=adapter) as ctor:
            first = _assessment.fncGetAssessment(Mock(), args)
            second = _assessment.fncGetAssessment(Mock(), args)

        assert first is second
        ctor.assert_called_once()
        adapter.build_snapshot.assert_called_once_with(inactive_days=90, include_guests=False, include_audit=True)

    def test_listing_failure_is_remembered(self):
        adapter = Mock()
        adapter.build_snapshot.side_effect = DirectoryUnavailableError("network down")
        args = argparse.Namespace(cfg=fncDefaultConfig())

        with patch.object(_assessment, "DirectoryFetchAdapter", return_value=adapter):
            for _ in range(3):
                with pytest.raises(DirectoryUnavailableError):
                    _assessment.fncGetAssessment(Mock(), args)

        adapter.build_snapshot.assert_called_once()

    def test_settings_come_from_config(self):
        cfg = fncDefaultConfig()
        cfg["assessment"]["inactive_days_threshold"] = "bogus"
        settings = _assessment.fncAssessmentSettings(argparse.Namespace(cfg=cfg))
        assert settings["inactive_days_threshold"] == 90


class TestModuleLoader:

    def test_discovery_ignores_helpers(self):
        assert fncDiscoverModules("entra") == ENTRA_MODULES

    def test_unknown_provider(self):
        assert fncDiscoverModules("aws") == []

    def test_missing_module(self):
        assert fncRunModule("entra", "does_not_exist", Mock(), Mock()) is None

    def test_module_errors_are_isolated(self):
        args = argparse.Namespace(cfg=fncDefaultConfig())
        with patch.object(_assessment, "DirectoryFetchAdapter", side_effect=RuntimeError("boom")):
            result = fncRunModule("entra", "group_inventory", Mock(), args)
        assert result == {"error": "boom"}

    def test_auth_errors_propagate(self):
        args = argparse.Namespace(cfg=fncDefaultConfig())
        with patch.object(_assessment, "DirectoryFetchAdapter", side_effect=GraphAuthError("denied")):
            with pytest.raises(GraphAuthError):
                fncRunModule("entra", "group_inventory", Mock(), args)

    def test_listing_failure_propagates(self):
        args = argparse.Namespace(cfg=fncDefaultConfig())
        with patch.object(_assessment, "DirectoryFetchAdapter", side_effect=DirectoryUnavailableError("down")):
            with pytest.raises(DirectoryUnavailableError):
                fncRunModule("entra", "group_inventory", Mock(), args)

    @pytest.mark.parametrize("parallel", [None, 3])
    def test_run_all_with_skip(self, assessed_args, parallel):
        assessed_args.parallel = parallel
        results = fncRunAllModules("entra", Mock(), assessed_args, skip_list=["privileged_groups"])

        assert list(results) == ENTRA_MODULES
        assert results["privileged_groups"] == {"skipped": True}
        assert results["group_inventory"]["summary"]["Total Groups"] == 3


class TestCli:

    @pytest.fixture
    def config_path(self, tmp_path):
        return str(tmp_path / "config.json")

    def test_requires_scan_or_run_all(self, config_path):
        with pytest.raises(SystemExit):
            GroupKennel.fncParseArguments(["entra", "--config", config_path])

    def test_parse_assessment_flags(self, config_path):
        args = GroupKennel.fncParseArguments([
            "entra", "--scan", "group_activity", "--inactive-days", "30",
            "--include-guests", "--no-audit", "--export", "html,csv",
        ])
        assert args.inactive_days == 30
        assert args.include_guests is True
        assert args.no_audit is True
        assert args.export == ["html,csv"]

    def test_auth_failure_exits_non_zero(self, config_path):
        with patch.object(GroupKennel, "fncInitClient", side_effect=GraphAuthError("bad secret")):
            assert GroupKennel.main(["entra", "--scan", "group_inventory", "--config", config_path]) == 2

    @pytest.mark.parametrize("parallel", [[], ["--parallel", "3"]])
    def test_unreachable_graph_fails_run_all(self, config_path, parallel):
        client = Mock()
        client.get_all.side_effect = requests.ConnectionError("network down")

        with patch.object(GroupKennel, "fncInitClient", return_value=client):
            code = GroupKennel.main(["entra", "--run-all", "--config", config_path] + parallel)

        assert code == 1
        assert client.get_all.call_count == 1

    def test_run_all_with_failed_module_exits_non_zero(self, config_path):
        results = {"group_inventory": {"summary": {}}, "group_activity": {"error": "boom"}}
        with patch.object(GroupKennel, "fncInitClient", return_value=Mock()), \
             patch.object(GroupKennel, "fncRunAllModules", return_value=results):
            assert GroupKennel.main(["entra", "--run-all", "--config", config_path]) == 1

    def test_module_error_exits_non_zero(self, config_path):
        with patch.object(GroupKennel, "fncInitClient", return_value=Mock()), \
             patch.object(GroupKennel, "fncRunModule", return_value={"error": "boom"}):
            assert GroupKennel.main(["entra", "--scan", "group_inventory", "--config", config_path]) == 1

    def test_successful_scan_exports(self, config_path):
        with patch.object(GroupKennel, "fncInitClient", return_value=Mock()), \
             patch.object(GroupKennel, "fncRunModule", return_value={"summary": {}}) as run_module, \
             patch.object(GroupKennel, "fncExportSingleModule") as export:
            code = GroupKennel.main([
                "entra", "--scan", "group_inventory", "--config", config_path,
                "--inactive-days", "45", "--export", "json",
            ])

        assert code == 0
        args = run_module.call_args.args[3]
        assert args.cfg["assessment"]["inactive_days_threshold"] == 45
        export.assert_called_once_with("group_inventory", {"summary": {}}, {"json"})
