"""
Tests for desired-state sources: in-memory and manifest directory.
"""

import asyncio
import os
import shutil
from pathlib import Path

import pytest

from filesidecar.exceptions import InitializationError, SourceUnavailableError
from filesidecar.sources import InMemorySource, ManifestDirectorySource
from filesidecar.sources.manifest import split_key

KEY = "default/plugins"


def write_manifest(root, key, text, suffix=".yaml"):
    namespace, name = key.split("/")
    path = root / namespace / f"{name}{suffix}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def bump_mtime(path):
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))


class TestInMemorySource:
    @pytest.mark.asyncio
    async def test_start_notifies_existing_and_syncs(self):
        source = InMemorySource({"ns/a": {"f": "u"}, "ns/b": {}})
        seen = []
        source.add_handler(seen.append)

        assert not source.has_synced
        await source.start()

        assert sorted(seen) == ["ns/a", "ns/b"]
        assert source.has_synced
        assert await source.wait_for_sync(timeout=0.1) is True

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        source = InMemorySource({"ns/a": {"f": "u"}})
        state, exists = await source.get("ns/a")
        state["g"] = "v"

        assert exists is True
        assert await source.get("ns/a") == ({"f": "u"}, True)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        assert await InMemorySource().get("ns/none") == ({}, False)

    @pytest.mark.asyncio
    async def test_set_and_delete_notify_while_running(self):
        source = InMemorySource()
        seen = []
        source.add_handler(seen.append)

        source.set("ns/a", {"f": "u"})
        assert seen == []

        async with source:
            source.set("ns/a", {"f": "u2"})
            source.delete("ns/a")

        assert seen == ["ns/a", "ns/a", "ns/a"]
        assert source.keys == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        source = InMemorySource({"ns/a": {}})
        seen = []

        def broken(key):
            raise RuntimeError("handler bug")

        source.add_handler(broken)
        source.add_handler(seen.append)
        await source.start()

        assert seen == ["ns/a"]

    @pytest.mark.asyncio
    async def test_wait_for_sync_times_out(self):
        assert await InMemorySource().wait_for_sync(timeout=0.01) is False


class TestSplitKey:
    def test_valid(self):
        assert split_key("default/my-config-map") == ("default", "my-config-map")

    @pytest.mark.parametrize("key", ["noslash", "/name", "ns/", "a/b/c", "../x", "ns/.."])
    def test_invalid(self, key):
        with pytest.raises(ValueError):
            split_key(key)


class TestManifestParsing:
    """Document shapes accepted by get()."""

    @pytest.mark.asyncio
    async def test_flat_document(self, tmp_path):
        write_manifest(tmp_path, KEY, "a.jar: https://repo/a.jar\nb.jar: https://repo/b.jar\n")
        source = ManifestDirectorySource(tmp_path)

        assert await source.get(KEY) == ({"a.jar": "https://repo/a.jar", "b.jar": "https://repo/b.jar"}, True)

    @pytest.mark.asyncio
    async def test_configmap_document(self, tmp_path):
        write_manifest(
            tmp_path,
            KEY,
            "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: plugins\ndata:\n  a.jar: https://repo/a.jar\n",
        )
        source = ManifestDirectorySource(tmp_path)

        assert await source.get(KEY) == ({"a.jar": "https://repo/a.jar"}, True)

    @pytest.mark.asyncio
    async def test_configmap_without_data_is_empty(self, tmp_path):
        write_manifest(tmp_path, KEY, "kind: ConfigMap\ndata:\n")
        assert await ManifestDirectorySource(tmp_path).get(KEY) == ({}, True)

    @pytest.mark.asyncio
    async def test_flat_file_named_data(self, tmp_path):
        write_manifest(tmp_path, KEY, "data: https://repo/data\nother: https://repo/other\n")
        state, _ = await ManifestDirectorySource(tmp_path).get(KEY)
        assert state == {"data": "https://repo/data", "other": "https://repo/other"}

    @pytest.mark.asyncio
    async def test_empty_document(self, tmp_path):
        write_manifest(tmp_path, KEY, "")
        assert await ManifestDirectorySource(tmp_path).get(KEY) == ({}, True)

    @pytest.mark.asyncio
    async def test_yml_suffix_and_scalar_values(self, tmp_path):
        write_manifest(tmp_path, KEY, "count: 3\n", suffix=".yml")
        assert await ManifestDirectorySource(tmp_path).get(KEY) == ({"count": "3"}, True)

    @pytest.mark.asyncio
    async def test_missing_manifest(self, tmp_path):
        (tmp_path / "default").mkdir()
        assert await ManifestDirectorySource(tmp_path).get(KEY) == ({}, False)

    @pytest.mark.asyncio
    async def test_missing_root_is_unavailable_not_deleted(self, tmp_path):
        root = tmp_path / "manifests"
        write_manifest(root, KEY, "a.jar: https://repo/a.jar\n")
        source = ManifestDirectorySource(root)
        shutil.rmtree(root)

        with pytest.raises(SourceUnavailableError, match="Manifest directory not found") as exc_info:
            await source.get(KEY)
        assert exc_info.value.key == KEY

    @pytest.mark.asyncio
    async def test_missing_namespace_is_unavailable(self, tmp_path):
        (tmp_path / "other").mkdir()
        with pytest.raises(SourceUnavailableError, match="default"):
            await ManifestDirectorySource(tmp_path).get(KEY)

    @pytest.mark.asyncio
    async def test_permission_error_is_unavailable(self, tmp_path, monkeypatch):
        write_manifest(tmp_path, KEY, "a.jar: https://repo/a.jar\n")

        def denied(self):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "is_file", denied)
        with pytest.raises(SourceUnavailableError, match="Permission denied"):
            await ManifestDirectorySource(tmp_path).get(KEY)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text",
        ["a: [unclosed\n", "- a\n- b\n", "kind: ConfigMap\ndata: [1, 2]\n", "a:\n  nested: value\n"],
    )
    async def test_unreadable_documents(self, tmp_path, text):
        write_manifest(tmp_path, KEY, text)
        with pytest.raises(SourceUnavailableError) as exc_info:
            await ManifestDirectorySource(tmp_path).get(KEY)
        assert exc_info.value.key == KEY

    @pytest.mark.asyncio
    async def test_malformed_key(self, tmp_path):
        with pytest.raises(SourceUnavailableError):
            await ManifestDirectorySource(tmp_path).get("not-a-key")


class TestManifestWatching:
    """Change detection and lifecycle."""

    @pytest.mark.asyncio
    async def test_start_requires_directory(self, tmp_path):
        source = ManifestDirectorySource(tmp_path / "absent")
        with pytest.raises(InitializationError, match="Manifest directory not found"):
            await source.start()

    @pytest.mark.asyncio
    async def test_initial_listing_notifies_and_syncs(self, tmp_path):
        write_manifest(tmp_path, "ns1/a", "f: u\n")
        write_manifest(tmp_path, "ns2/b", "f: u\n")
        source = ManifestDirectorySource(tmp_path, poll_interval=60)
        seen = []
        source.add_handler(seen.append)

        async with source:
            assert source.has_synced
            assert sorted(seen) == ["ns1/a", "ns2/b"]

    @pytest.mark.asyncio
    async def test_poll_once_reports_add_change_delete(self, tmp_path):
        (tmp_path / "ns").mkdir()
        source = ManifestDirectorySource(tmp_path)
        assert await source.poll_once() == []

        path = write_manifest(tmp_path, "ns/a", "f: u\n")
        assert await source.poll_once() == ["ns/a"]
        assert await source.poll_once() == []

        path.write_text("f: u\ng: v\n")
        bump_mtime(path)
        assert await source.poll_once() == ["ns/a"]

        path.unlink()
        assert await source.poll_once() == ["ns/a"]
        assert await source.get("ns/a") == ({}, False)

    @pytest.mark.asyncio
    async def test_keys_restrict_watching(self, tmp_path):
        write_manifest(tmp_path, "ns/watched", "f: u\n")
        write_manifest(tmp_path, "ns/ignored", "f: u\n")
        source = ManifestDirectorySource(tmp_path, keys=["ns/watched"])

        assert await source.poll_once() == ["ns/watched"]

    @pytest.mark.asyncio
    async def test_vanished_root_keeps_watched_keys(self, tmp_path):
        root = tmp_path / "manifests"
        write_manifest(root, "ns/watched", "f: u\n")
        source = ManifestDirectorySource(root, keys=["ns/watched"])
        assert await source.poll_once() == ["ns/watched"]

        moved = tmp_path / "moved"
        root.rename(moved)
        with pytest.raises(FileNotFoundError):
            await source.poll_once()

        # Same files back in place: nothing was ever reported deleted
        moved.rename(root)
        assert await source.poll_once() == []

    @pytest.mark.asyncio
    async def test_poll_loop_survives_vanished_root(self, tmp_path):
        root = tmp_path / "manifests"
        write_manifest(root, "ns/watched", "f: u\n")
        source = ManifestDirectorySource(root, keys=["ns/watched"], poll_interval=0.01)
        seen = []
        source.add_handler(seen.append)

        async with source:
            assert seen == ["ns/watched"]
            shutil.rmtree(root)
            await asyncio.sleep(0.1)
            assert source._task is not None and not source._task.done()

        assert seen == ["ns/watched"]

    def test_invalid_watched_key(self, tmp_path):
        with pytest.raises(ValueError):
            ManifestDirectorySource(tmp_path, keys=["bad"])

    @pytest.mark.asyncio
    async def test_poll_loop_picks_up_changes(self, tmp_path):
        (tmp_path / "ns").mkdir()
        source = ManifestDirectorySource(tmp_path, poll_interval=0.01)
        changed = asyncio.Event()
        source.add_handler(lambda key: changed.set())

        async with source:
            write_manifest(tmp_path, "ns/late", "f: u\n")
            await asyncio.wait_for(changed.wait(), timeout=2)

    @pytest.mark.asyncio
    async def test_stop_ends_poll_task(self, tmp_path):
        source = ManifestDirectorySource(tmp_path, poll_interval=60)
        await source.start()
        await asyncio.wait_for(source.stop(), timeout=1)
        assert source._task is None
