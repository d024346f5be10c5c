"""Tests for host selection."""

from __future__ import annotations

from esfan.selector import HostSelection, glob_to_regex, select_hosts


class TestGlobs:
    def test_star_matches_suffixes(self, registry):
        assert select_hosts(registry, HostSelection(names=["ch-*"])) == ["ch-1", "ch-2"]

    def test_question_mark_matches_one_character(self, registry):
        assert select_hosts(registry, HostSelection(names=["ch-?"])) == ["ch-1", "ch-2"]

    def test_star_matches_empty(self, registry):
        assert select_hosts(registry, HostSelection(names=["ch*"])) == ["ch", "ch-1", "ch-2"]

    def test_dot_is_literal(self):
        regex = glob_to_regex("v8.*")
        assert regex.fullmatch("v8.1")
        assert not regex.fullmatch("v811")

    def test_pattern_is_anchored(self):
        assert not glob_to_regex("ch-?").fullmatch("xch-1")

    def test_glob_matching_nothing_falls_back_to_all(self, registry):
        # Nothing selected at all means every host
        assert select_hosts(registry, HostSelection(names=["zz*"])) == registry.names()


class TestNames:
    def test_plain_name(self, registry):
        assert select_hosts(registry, HostSelection(names=["ch"])) == ["ch"]

    def test_unregistered_name_is_kept(self, registry):
        assert select_hosts(registry, HostSelection(names=["missing"])) == ["missing"]

    def test_dedupes_names(self, registry):
        selection = HostSelection(names=["v8", "v8", "node", "node"])
        assert select_hosts(registry, selection) == ["v8", "node"]


class TestGroupsAndTags:
    def test_group_matches_type(self, registry):
        assert select_hosts(registry, HostSelection(groups=["ch"])) == ["ch", "ch-1", "ch-2"]

    def test_unknown_group_selects_nothing_extra(self, registry):
        selection = HostSelection(names=["node"], groups=["hermes"])
        assert select_hosts(registry, selection) == ["node"]

    def test_tag_any_overlap(self, registry):
        selection = HostSelection(tags=["latest", "greatest"])
        assert select_hosts(registry, selection) == ["ch", "ch-2", "node"]

    def test_single_tag(self, registry):
        assert select_hosts(registry, HostSelection(tags=["greatest"])) == ["ch-2", "node"]

    def test_name_and_group_union_dedupes(self, registry):
        selection = HostSelection(names=["v8", "v8"], groups=["d8"])
        assert select_hosts(registry, selection) == ["v8"]

    def test_first_occurrence_order(self, registry):
        selection = HostSelection(names=["node"], groups=["ch"], tags=["latest"])
        assert select_hosts(registry, selection) == ["node", "ch", "ch-1", "ch-2"]


def test_empty_selection_is_all_hosts(registry):
    assert select_hosts(registry, HostSelection()) == ["ch", "ch-1", "ch-2", "node", "v8"]
