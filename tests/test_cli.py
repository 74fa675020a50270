"""
Tests for CLI commands.

Uses typer's CliRunner; the long-running loop is replaced so no test blocks.
"""

import json

import pytest
from typer.testing import CliRunner

import filesidecar.cli.run as run_module
from filesidecar import __version__
from filesidecar.cli.main import app
from filesidecar.config.settings import MANIFEST_DIR_ENV
from filesidecar.controller import Controller

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(MANIFEST_DIR_ENV, raising=False)


@pytest.fixture
def served(monkeypatch):
    """Replace the serve loop and capture the controller it would have run."""
    controllers = []

    async def fake_serve(controller):
        controllers.append(controller)

    monkeypatch.setattr(run_module, "serve", fake_serve)
    return controllers


class TestVersion:
    """Tests for --version flag."""

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"filesidecar version {__version__}" in result.output

    def test_version_short_flag(self):
        result = runner.invoke(app, ["-v"])
        assert result.exit_code == 0
        assert "filesidecar version" in result.output


class TestHelp:
    """Tests for help output."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "run" in result.output

    def test_run_help(self):
        result = runner.invoke(app, ["run", "--help"])
        assert result.exit_code == 0
        assert "--download-path" in result.output
        assert "--config-map" in result.output


class TestRun:
    """Tests for the run command."""

    def test_missing_manifest_dir_exits_nonzero(self, served, tmp_path):
        result = runner.invoke(app, ["run", "--download-path", str(tmp_path / "out")])
        assert result.exit_code == 1
        assert "No manifest directory configured" in result.output
        assert served == []

    def test_missing_config_file_exits_nonzero(self, served, tmp_path):
        result = runner.invoke(app, ["run", "--config", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_invalid_setting_exits_nonzero(self, served, tmp_path):
        result = runner.invoke(app, ["run", "--manifest-dir", str(tmp_path), "--workers", "0"])
        assert result.exit_code == 1
        assert "workers must be >= 1" in result.output

    def test_non_string_manifest_dir_in_config_exits_nonzero(self, served, tmp_path):
        config_file = tmp_path / "sidecar.yaml"
        config_file.write_text("manifest_dir: 123\n")
        result = runner.invoke(app, ["run", "--config", str(config_file)])
        assert result.exit_code == 1
        assert "manifest_dir must be a string" in result.output

    def test_builds_controller_from_options(self, served, tmp_path):
        download_path = tmp_path / "out"
        result = runner.invoke(
            app,
            [
                "run",
                "--namespace",
                "plugins",
                "--config-map",
                "jars",
                "--download-path",
                str(download_path),
                "--manifest-dir",
                str(tmp_path),
                "--workers",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        assert len(served) == 1
        controller = served[0]
        assert isinstance(controller, Controller)
        assert controller.resync_keys == ("plugins/jars",)
        assert controller.dispatcher.workers == 2
        assert download_path.is_dir()

    def test_config_file_with_cli_override(self, served, tmp_path):
        config_file = tmp_path / "sidecar.yaml"
        config_file.write_text(
            f"namespace: from-file\nconfig_map: cm\nmanifest_dir: {tmp_path}\ndownload_path: {tmp_path / 'out'}\n"
        )
        result = runner.invoke(app, ["run", "--config", str(config_file), "--config-map", "override"])

        assert result.exit_code == 0, result.output
        assert served[0].resync_keys == ("from-file/override",)

    def test_manifest_dir_from_environment(self, served, tmp_path, monkeypatch):
        monkeypatch.setenv(MANIFEST_DIR_ENV, str(tmp_path))
        result = runner.invoke(app, ["run", "--download-path", str(tmp_path / "out")])

        assert result.exit_code == 0, result.output
        assert len(served) == 1


class TestPlan:
    """Tests for the plan command."""

    @pytest.fixture
    def layout(self, tmp_path):
        manifests = tmp_path / "manifests"
        (manifests / "default").mkdir(parents=True)
        (manifests / "default" / "my-config-map.yaml").write_text("a.jar: https://repo/a.jar\nb.jar: https://repo/b.jar\n")
        out = tmp_path / "out"
        out.mkdir()
        (out / "b.jar").write_bytes(b"x")
        (out / "old.jar").write_bytes(b"x")
        return manifests, out

    def test_json_output(self, layout):
        manifests, out = layout
        result = runner.invoke(
            app, ["plan", "--manifest-dir", str(manifests), "--download-path", str(out), "--format", "json"]
        )

        assert result.exit_code == 0, result.output
        plan = json.loads(result.stdout)
        assert plan == {
            "key": "default/my-config-map",
            "exists": True,
            "download": {"a.jar": "https://repo/a.jar"},
            "delete": ["old.jar"],
        }
        # Nothing changed on disk
        assert sorted(p.name for p in out.iterdir()) == ["b.jar", "old.jar"]

    def test_table_output(self, layout):
        manifests, out = layout
        result = runner.invoke(app, ["plan", "--manifest-dir", str(manifests), "--download-path", str(out)])

        assert result.exit_code == 0, result.output
        assert "a.jar" in result.output
        assert "old.jar" in result.output
        assert "1 to download, 1 to delete" in result.output

    def test_missing_download_dir_counts_as_empty(self, layout, tmp_path):
        manifests, _ = layout
        result = runner.invoke(
            app,
            ["plan", "--manifest-dir", str(manifests), "--download-path", str(tmp_path / "new"), "--format", "json"],
        )

        assert result.exit_code == 0, result.output
        assert sorted(json.loads(result.stdout)["download"]) == ["a.jar", "b.jar"]
        assert not (tmp_path / "new").exists()

    def test_missing_manifest_dir(self, tmp_path):
        result = runner.invoke(app, ["plan", "--manifest-dir", str(tmp_path / "absent")])
        assert result.exit_code == 1
        assert "Manifest directory not found" in result.output
