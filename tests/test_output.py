"""Tests for the staging writer, atomic publish and the build manifest."""

import json

import pytest

from vault_build.errors import FatalBuildError
from vault_build.output import OutputWriter, build_manifest, load_manifest, verify_manifest
from vault_build.output.manifest import MANIFEST_NAME
from vault_build.output.writer import dumps
from vault_build.utils.hashing import compute_hash


class TestManifest:
    """Test manifest construction and verification."""

    def test_entries_sorted_and_exclude_manifest(self, tmp_path):
        """Entries are sorted by hash and never list manifest.json."""
        (tmp_path / "b.json").write_text("bbb")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "a.json").write_text("a")
        (tmp_path / MANIFEST_NAME).write_text("{}")

        manifest = build_manifest(tmp_path)

        assert sorted(e.path for e in manifest.entries) == ["b.json", "sub/a.json"]
        assert [e.hash for e in manifest.entries] == sorted(e.hash for e in manifest.entries)
        entry = manifest.find("sub/a.json")
        assert entry.hash == compute_hash(b"a")
        assert entry.size == 1

    def test_verify_clean(self, tmp_path):
        """An untouched output verifies with no problems."""
        (tmp_path / "posts.json").write_text("[]")
        (tmp_path / MANIFEST_NAME).write_text(dumps(build_manifest(tmp_path).model_dump(mode="json")))
        assert verify_manifest(tmp_path) == []

    def test_verify_detects_tampering(self, tmp_path):
        """Edited, resized and deleted files are reported."""
        for name in ("a.json", "b.json", "c.json"):
            (tmp_path / name).write_text("same size")
        (tmp_path / MANIFEST_NAME).write_text(dumps(build_manifest(tmp_path).model_dump(mode="json")))

        (tmp_path / "a.json").write_text("SAME SIZE")
        (tmp_path / "b.json").write_text("longer than before")
        (tmp_path / "c.json").unlink()

        assert sorted(verify_manifest(tmp_path)) == [
            "hash mismatch: a.json",
            "missing: c.json",
            "size mismatch: b.json",
        ]

    def test_verify_without_manifest(self, tmp_path):
        """Verifying a directory with no manifest raises."""
        with pytest.raises(FileNotFoundError):
            verify_manifest(tmp_path)
        assert load_manifest(tmp_path) is None


class TestOutputWriter:
    """Test staging, publish and discard."""

    def test_staging_is_hidden_sibling(self, tmp_path):
        """Staging lives next to the output under a dot-name."""
        writer = OutputWriter(tmp_path / "dist")
        staging = writer.open()
        assert staging.parent == (tmp_path / "dist").resolve().parent
        assert staging.name.startswith(".dist.staging-")
        writer.discard()

    def test_write_json_stable_format(self, tmp_path):
        """JSON artifacts use two-space indent, UTF-8 and a trailing newline."""
        writer = OutputWriter(tmp_path / "dist")
        writer.open()
        path = writer.write_json("nested/data.json", {"title": "Café"})
        text = path.read_text(encoding="utf-8")
        assert text == '{\n  "title": "Café"\n}\n'
        writer.discard()

    def test_key_order_kept(self, tmp_path):
        """Keys are written in the order given, not re-sorted."""
        assert dumps({"title": "T", "date": "2024-01-01", "author": "A"}) == (
            '{\n  "title": "T",\n  "date": "2024-01-01",\n  "author": "A"\n}\n'
        )

    def test_publish_replaces_output(self, tmp_path):
        """publish() swaps the staged tree in and removes the old one."""
        out = tmp_path / "dist"
        out.mkdir()
        (out / "stale.json").write_text("old")

        writer = OutputWriter(out)
        writer.open()
        writer.write_json("posts.json", [])
        manifest = writer.write_manifest()
        writer.publish()

        assert sorted(p.name for p in out.iterdir()) == [MANIFEST_NAME, "posts.json"]
        assert load_manifest(out) == manifest
        assert not list(tmp_path.glob(".dist.staging-*"))
        assert not list(tmp_path.glob(".dist.old-*"))

    def test_discard_keeps_previous_output(self, tmp_path):
        """A discarded build leaves the published output untouched."""
        out = tmp_path / "dist"
        out.mkdir()
        (out / "posts.json").write_text("previous")

        writer = OutputWriter(out)
        writer.open()
        writer.write_json("posts.json", ["new"])
        writer.discard()
        writer.discard()

        assert (out / "posts.json").read_text() == "previous"
        assert not writer.staging_dir.exists()

    def test_discard_after_publish_is_noop(self, tmp_path):
        """discard() after a successful publish does not touch the output."""
        writer = OutputWriter(tmp_path / "dist")
        writer.open()
        writer.write_json("posts.json", [])
        writer.publish()
        writer.discard()
        assert (tmp_path / "dist" / "posts.json").exists()

    def test_open_twice_fails(self, tmp_path):
        """A staging directory that already exists is a fatal error."""
        writer = OutputWriter(tmp_path / "dist")
        writer.open()
        with pytest.raises(FatalBuildError):
            writer.open()
        writer.discard()

    def test_read_published_json(self, tmp_path):
        """Previous artifacts are read back; broken ones are ignored."""
        out = tmp_path / "dist"
        out.mkdir()
        (out / "medias.json").write_text(json.dumps([{"hash": "h"}]))
        (out / "broken.json").write_text("{not json")

        writer = OutputWriter(out)
        assert writer.read_published_json("medias.json") == [{"hash": "h"}]
        assert writer.read_published_json("broken.json") is None
        assert writer.read_published_json("missing.json") is None
