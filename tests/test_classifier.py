"""
Tests for group classification.

Covers:
- Category precedence over every flag combination
- Dynamic membership detection
- Classifying whole snapshots
"""
import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from groupkennel.core.classifier import fncClassify, fncIsDynamic, fncClassifyGroup, fncClassifyAll
from groupkennel.core.models import GroupCategory, GroupRecord


def create_group(group_id="g1", group_types=(), security_enabled=False, mail_enabled=False, **kwargs):
    """Create a GroupRecord with sensible defaults."""
    return GroupRecord(
        id=group_id,
        display_name=kwargs.pop("display_name", f"Group {group_id}"),
        group_types=frozenset(group_types),
        security_enabled=security_enabled,
        mail_enabled=mail_enabled,
        **kwargs,
    )


class TestClassify:
    """Tests for fncClassify precedence."""

    @pytest.mark.parametrize("group_types,security,mail,expected", [
        (["Unified"], False, True, GroupCategory.M365),
        (["Unified"], True, True, GroupCategory.M365),
        (["Unified"], False, False, GroupCategory.M365),
        ([], True, True, GroupCategory.MAIL_ENABLED_SECURITY),
        ([], True, False, GroupCategory.SECURITY),
        ([], False, True, GroupCategory.DISTRIBUTION),
        ([], False, False, GroupCategory.UNKNOWN),
        (["DynamicMembership"], True, False, GroupCategory.SECURITY),
    ])
    def test_decision_table(self, group_types, security, mail, expected):
        assert fncClassify(group_types, security, mail) == expected

    def test_none_group_types_treated_as_empty(self):
        assert fncClassify(None, True, False) == GroupCategory.SECURITY

    def test_result_is_always_a_known_category(self):
        for gtypes in ([], ["Unified"], ["DynamicMembership"], ["Unified", "DynamicMembership"]):
            for sec in (True, False):
                for mail in (True, False):
                    assert fncClassify(gtypes, sec, mail) in GroupCategory.ALL


class TestIsDynamic:
    """Tests for dynamic membership detection."""

    def test_dynamic(self):
        assert fncIsDynamic(["Unified", "DynamicMembership"]) is True

    def test_static(self):
        assert fncIsDynamic(["Unified"]) is False
        assert fncIsDynamic(None) is False


class TestClassifyGroup:
    """Tests for classifying GroupRecords."""

    def test_dynamic_m365_group(self):
        g = create_group("g1", ["Unified", "DynamicMembership"], mail_enabled=True)
        cls = fncClassifyGroup(g)

        assert cls.group_id == "g1"
        assert cls.category == GroupCategory.M365
        assert cls.is_dynamic is True

    def test_classify_all_keys_by_id(self):
        groups = [
            create_group("a", security_enabled=True),
            create_group("b", mail_enabled=True),
        ]
        result = fncClassifyAll(groups)

        assert set(result) == {"a", "b"}
        assert result["a"].category == GroupCategory.SECURITY
        assert result["b"].category == GroupCategory.DISTRIBUTION

    def test_classify_all_empty(self):
        assert fncClassifyAll([]) == {}
