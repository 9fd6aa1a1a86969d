"""Unit tests for two-way merge patches."""

from __future__ import annotations

from nsalloc.cluster.patch import apply_merge_patch, create_merge_patch


class TestCreateMergePatch:
    def test_identical_documents(self):
        doc = {"metadata": {"annotations": {"a": "1"}}}
        assert create_merge_patch(doc, doc) == {}

    def test_added_nested_key(self):
        original = {"metadata": {"name": "ns", "annotations": {"keep": "x"}}}
        modified = {"metadata": {"name": "ns", "annotations": {"keep": "x", "new": "y"}}}
        assert create_merge_patch(original, modified) == {"metadata": {"annotations": {"new": "y"}}}

    def test_changed_value(self):
        assert create_merge_patch({"a": 1}, {"a": 2}) == {"a": 2}

    def test_removed_key_is_null(self):
        assert create_merge_patch({"a": 1, "b": 2}, {"a": 1}) == {"b": None}

    def test_dict_replacing_scalar(self):
        assert create_merge_patch({"a": "x"}, {"a": {"b": 1}}) == {"a": {"b": 1}}


class TestApplyMergePatch:
    def test_preserves_unrelated_fields(self):
        target = {"metadata": {"annotations": {"owner": "team-a"}, "labels": {"env": "prod"}}}
        patch = {"metadata": {"annotations": {"uid": "0/1"}}}
        result = apply_merge_patch(target, patch)
        assert result["metadata"]["annotations"] == {"owner": "team-a", "uid": "0/1"}
        assert result["metadata"]["labels"] == {"env": "prod"}

    def test_null_removes(self):
        assert apply_merge_patch({"a": 1, "b": 2}, {"b": None}) == {"a": 1}

    def test_does_not_mutate_target(self):
        target = {"a": {"b": 1}}
        apply_merge_patch(target, {"a": {"c": 2}})
        assert target == {"a": {"b": 1}}

    def test_creates_missing_parents(self):
        assert apply_merge_patch({}, {"a": {"b": 1}}) == {"a": {"b": 1}}

    def test_patch_applied_to_concurrently_edited_document(self):
        original = {"annotations": {"x": "1"}}
        modified = {"annotations": {"x": "1", "y": "2"}}
        patch = create_merge_patch(original, modified)
        concurrent = {"annotations": {"x": "1", "z": "3"}}
        assert apply_merge_patch(concurrent, patch) == {"annotations": {"x": "1", "y": "2", "z": "3"}}
