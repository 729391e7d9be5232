"""Tests for the rule model and result types."""
from ovs_mirror.engine import (
    ApplySummary,
    EntitySource,
    LineDiagnostic,
    MirrorRule,
    PortSource,
    RemovalSummary,
    RuleFailure,
    RuleSet,
    SelectMode,
    Severity,
    load_rules,
    resolve_role,
    tap_name,
)


class TestMirrorNames:
    """Mirror names are the only identity shared with the switch."""

    def test_physical_name(self):
        rule = MirrorRule("vmbr0", PortSource("eno12419"), 100, 1)

        assert rule.mirror_name == "mirror_vmbr0_eno12419_to_vm100i1"
        assert rule.dest_interface == "tap100i1"

    def test_virtual_name(self):
        rule = MirrorRule("vmbr0", EntitySource(200, 0), 101, 1)

        assert rule.mirror_name == "mirror_vmbr0_tap200i0_to_vm101i1"

    def test_name_ignores_options_and_line(self):
        """Options and line numbers are not part of the identity."""
        a = MirrorRule("vmbr0", PortSource("eno1"), 100, 1, line_number=3)
        b = MirrorRule(
            "vmbr0", PortSource("eno1"), 100, 1,
            promiscuous=True, select_mode=SelectMode.DST_ONLY, line_number=9,
        )

        assert a.mirror_name == b.mirror_name

    def test_names_stable_across_reloads(self):
        text = "vmbr0 eno1 100 1\nvmbr1 entity200:0 101 1\n"

        assert load_rules(text).rules.mirror_names() == load_rules(text).rules.mirror_names()

    def test_tap_name(self):
        assert tap_name(100, 0) == "tap100i0"
        assert str(EntitySource(7, 2)) == "entity7:2"


class TestRuleSet:
    """Tests for RuleSet queries."""

    def rules(self):
        return RuleSet((
            MirrorRule("vmbr0", PortSource("eno1"), 100, 1),
            MirrorRule("vmbr1", EntitySource(200, 0), 101, 1),
            MirrorRule("vmbr0", EntitySource(200, 1), 100, 2),
        ))

    def test_for_destination(self):
        assert [r.dest_nic_index for r in self.rules().for_destination(100)] == [1, 2]

    def test_for_source(self):
        assert len(self.rules().for_source(200)) == 2
        assert self.rules().for_source(100) == []

    def test_bridges_first_seen_order(self):
        assert self.rules().bridges() == ["vmbr0", "vmbr1"]

    def test_entity_ids(self):
        assert self.rules().entity_ids() == [100, 101, 200]

    def test_empty_is_falsy(self):
        assert not RuleSet()
        assert len(self.rules()) == 3


class TestRoles:
    """Tests for role resolution."""

    def test_source_only(self):
        """entity200:0 -> 101 makes 200 a source and 101 a destination."""
        rules = load_rules("vmbr0 entity200:0 101 1").rules

        role_200 = resolve_role(200, rules)
        role_101 = resolve_role(101, rules)

        assert role_200.is_source and not role_200.is_destination
        assert role_101.is_destination and not role_101.is_source

    def test_both_roles(self):
        rules = load_rules("vmbr0 entity100:0 101 1\nvmbr0 eno1 100 1").rules

        role = resolve_role(100, rules)

        assert role.is_source and role.is_destination

    def test_unmanaged(self):
        rules = load_rules("vmbr0 eno1 100 1").rules

        assert not resolve_role(999, rules).managed


class TestResults:
    """Tests for result dataclasses."""

    def test_diagnostic_str(self):
        assert str(LineDiagnostic(4, Severity.ERROR, "bad")) == "Line 4: bad"
        assert str(LineDiagnostic(0, Severity.WARNING, "empty")) == "empty"

    def test_apply_summary(self):
        summary = ApplySummary(
            total=3,
            created=["a", "b"],
            failures=[RuleFailure("c", "boom")],
        )

        assert summary.succeeded == 2
        assert summary.failed == 1
        assert not summary.success
        assert summary.to_dict()["failures"] == [{"mirror_name": "c", "error": "boom"}]

    def test_removal_merge(self):
        merged = RemovalSummary(removed=["a"]).merge(
            RemovalSummary(missing=["b"], failures=[RuleFailure("c", "x")])
        )

        assert merged.removed == ["a"]
        assert merged.missing == ["b"]
        assert merged.failed == 1
