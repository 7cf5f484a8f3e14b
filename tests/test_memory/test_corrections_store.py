"""Tests for the JSON-file correction store."""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from attrition_brain.memory.corrections_store import CorrectionsStore


class TestCorrectionsStore:
    def test_missing_file_is_empty(self, tmp_path):
        store = CorrectionsStore(tmp_path / "corrections.json")
        assert dict(store.snapshot()) == {}

    def test_merge_persists(self, tmp_path):
        path = tmp_path / "data" / "corrections.json"
        store = CorrectionsStore(path)
        merged = store.merge({"me voy a estudiar": "Escuela"})
        assert merged == {"me voy a estudiar": "Escuela"}
        assert json.loads(path.read_text(encoding="utf-8")) == merged

    def test_merge_overwrites_by_key(self, tmp_path):
        store = CorrectionsStore(tmp_path / "c.json")
        store.merge({"a": "Escuela", "b": "Ambiente laboral"})
        merged = store.merge({"a": "Problemas de salud"})
        assert merged == {"a": "Problemas de salud", "b": "Ambiente laboral"}

    def test_snapshot_is_read_only_and_detached(self, tmp_path):
        store = CorrectionsStore(tmp_path / "c.json")
        store.merge({"a": "Escuela"})
        snap = store.snapshot()
        with pytest.raises(TypeError):
            snap["b"] = "Escuela"
        store.merge({"b": "Escuela"})
        assert "b" not in snap

    def test_corrupt_file_treated_as_empty(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text("{not json", encoding="utf-8")
        store = CorrectionsStore(path)
        assert dict(store.snapshot()) == {}
        assert store.merge({"a": "Escuela"}) == {"a": "Escuela"}

    def test_non_object_file_ignored(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('["Escuela"]', encoding="utf-8")
        assert dict(CorrectionsStore(path).snapshot()) == {}

    def test_no_temp_files_left(self, tmp_path):
        store = CorrectionsStore(tmp_path / "c.json")
        store.merge({"a": "Escuela"})
        assert [p.name for p in tmp_path.iterdir()] == ["c.json"]

    def test_concurrent_merges_keep_every_key(self, tmp_path):
        store = CorrectionsStore(tmp_path / "c.json")
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: store.merge({f"comentario {i}": "Escuela"}), range(20)))
        assert len(store.snapshot()) == 20
