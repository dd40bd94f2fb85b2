"""
Tests for the ensure and handshake use cases.
"""

import json
import textwrap

from pkgstrap.adapters.mock import MockDownloader
from pkgstrap.core.registry.base import RegistryState
from pkgstrap.core.registry.local import LocalRegistry
from pkgstrap.core.use_cases.ensure import ensure_dependencies
from pkgstrap.core.use_cases.handshake import run_handshake


def _config(tmp_path, dependencies="[dash]"):
    path = tmp_path / "bootstrap.yml"
    path.write_text(textwrap.dedent(f"""\
        host: {{name: editor, version: "29.1"}}
        dependencies: {dependencies}
        root: "{tmp_path / 'bootstrap'}"
    """))
    return path


class TestEnsureDependencies:
    def test_installs_from_default_elpa_index(self, tmp_path, make_elpa_index, make_tar, monkeypatch):
        monkeypatch.delenv("PKGSTRAP_ROOT", raising=False)
        monkeypatch.delenv("PKGSTRAP_HOST_VERSION", raising=False)
        mock = MockDownloader()
        mock.serve("gnu", "archive-contents", make_elpa_index(dash="2.19.1"))
        mock.serve("gnu", "dash-2.19.1.tar", make_tar("dash", "2.19.1"))
        registry = LocalRegistry(RegistryState(user_dir=tmp_path / "user"))

        result = ensure_dependencies(_config(tmp_path), downloader=mock, registry=registry)

        assert result.ok
        assert result.installed == ["dash"]
        assert result.package_dir == tmp_path / "bootstrap" / "29.1"
        assert result.to_dict()["refresh"]["refreshed"] == ["gnu"]
        assert registry.state.archives == {}
        assert ("gnu", "archive-contents") in mock.call_log

    def test_failure_is_reported_not_raised(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PKGSTRAP_ROOT", raising=False)
        mock = MockDownloader()
        mock.set_failure("gnu", "connection refused")
        mock.set_failure("melpa", "connection refused")

        result = ensure_dependencies(_config(tmp_path), downloader=mock)

        assert not result.ok
        assert "'dash' is unavailable" in result.error
        assert result.unresolved == ["dash"]
        assert result.refresh.failed["gnu"] == "connection refused"

    def test_bad_override(self, tmp_path):
        result = ensure_dependencies(_config(tmp_path), transport="pigeon")
        assert not result.ok
        assert "Invalid override" in result.error

    def test_config_error(self, tmp_path):
        result = ensure_dependencies(tmp_path / "missing.yml")
        assert not result.ok
        assert result.config is None
        assert "not found" in result.error

    def test_unusable_host_version_reported(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PKGSTRAP_HOST_VERSION", raising=False)
        path = _config(tmp_path)
        path.write_text(path.read_text().replace('"29.1"', '"..."'))

        result = ensure_dependencies(path, downloader=MockDownloader())

        assert not result.ok
        assert "Unusable host version" in result.error
        assert result.cause == "ValueError"
        assert result.package_dir is None

    def test_root_that_is_a_file_reported(self, tmp_path, monkeypatch):
        monkeypatch.delenv("PKGSTRAP_ROOT", raising=False)
        monkeypatch.delenv("PKGSTRAP_HOST_VERSION", raising=False)
        (tmp_path / "bootstrap").write_text("not a directory")

        result = ensure_dependencies(_config(tmp_path), downloader=MockDownloader())

        assert not result.ok
        assert result.error.startswith("Dependency bootstrap aborted")
        assert result.cause in ("NotADirectoryError", "FileExistsError")


class TestRunHandshake:
    def test_handshake_reports_outcome(self, tmp_path, fake_client, monkeypatch):
        monkeypatch.delenv("PKGSTRAP_TRUST", raising=False)
        tpl = fake_client.template(chunks=[fake_client.gnutls + "early"])
        path = tmp_path / "bootstrap.yml"
        path.write_text(f"tls:\n  poll_interval: 0.05\n  programs: [{json.dumps(tpl)}]\n")

        result = run_handshake("example.test", config_path=path)

        assert result.ok
        assert result.data_bytes == 5
        assert result.to_dict()["negotiation"]["state"] == "ready"

    def test_handshake_config_error(self, tmp_path):
        result = run_handshake("example.test", config_path=tmp_path / "missing.yml")
        assert not result.ok
        assert result.outcome is None
        assert "not found" in result.error
