"""
Tests for CLI commands — ensure, config check, transport handshake.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from pkgstrap.core.models.package import PackageDesc
from pkgstrap.core.persistence.package_store import write_descriptor
from pkgstrap.main import cli


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("PKGSTRAP_HOST_VERSION", "PKGSTRAP_ROOT", "PKGSTRAP_TRUST", "PKGSTRAP_TRANSPORT"):
        monkeypatch.delenv(var, raising=False)


def _make_config(tmp_path: Path, dependencies: list[str], extra: str = "") -> Path:
    content = textwrap.dedent(f"""\
        host:
          name: editor
          version: "29.1"
        dependencies: {json.dumps(dependencies)}
        root: {json.dumps(str(tmp_path / "bootstrap"))}
        transport: mock
    """) + extra
    path = tmp_path / "bootstrap.yml"
    path.write_text(content)
    return path


def _preinstall(tmp_path: Path, name: str, version: str) -> None:
    target = tmp_path / "bootstrap" / "29.1" / f"{name}-{version}"
    target.mkdir(parents=True)
    write_descriptor(PackageDesc(name=name, version=version), target)


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "bootstrap private dependencies" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestEnsureCommand:
    def test_already_present(self, tmp_path):
        config = _make_config(tmp_path, ["dash"])
        _preinstall(tmp_path, "dash", "2.19.1")

        result = CliRunner().invoke(cli, ["--config", str(config), "ensure"])

        assert result.exit_code == 0
        assert "1 dependencies already present" in result.output

    def test_already_present_json(self, tmp_path):
        config = _make_config(tmp_path, ["dash"])
        _preinstall(tmp_path, "dash", "2.19.1")

        result = CliRunner().invoke(cli, ["--config", str(config), "ensure", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert data["already_present"] is True
        assert data["dependencies"] == ["dash"]
        assert data["package_dir"] == str(tmp_path / "bootstrap" / "29.1")

    def test_unavailable_dependency_fails(self, tmp_path):
        config = _make_config(tmp_path, ["dash"])

        result = CliRunner().invoke(cli, ["-q", "--config", str(config), "ensure"])

        assert result.exit_code == 1
        assert "'dash' is unavailable" in result.output
        assert "archive gnu" in result.output

    def test_unavailable_dependency_json(self, tmp_path):
        config = _make_config(tmp_path, ["dash"])

        result = CliRunner().invoke(cli, ["-q", "--config", str(config), "ensure", "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["ok"] is False
        assert data["unresolved"] == ["dash"]
        assert set(data["refresh"]["failed"]) == {"gnu", "melpa"}

    def test_root_that_is_a_file_fails_cleanly(self, tmp_path):
        config = _make_config(tmp_path, ["dash"])
        (tmp_path / "bootstrap").write_text("not a directory")

        result = CliRunner().invoke(cli, ["-q", "--config", str(config), "ensure", "--json"])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        data = json.loads(result.stdout)
        assert data["ok"] is False
        assert data["error"].startswith("Dependency bootstrap aborted")

    def test_missing_config(self, tmp_path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "ensure"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestConfigCheckCommand:
    def test_valid(self, tmp_path):
        config = _make_config(tmp_path, ["dash", "s"])

        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check"])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Dependencies: 2" in result.output
        assert "gnu, melpa" in result.output

    def test_valid_json(self, tmp_path):
        config = _make_config(tmp_path, ["dash"])

        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["valid"] is True
        assert data["config"]["transport"] == "mock"

    def test_invalid(self, tmp_path):
        config = tmp_path / "bootstrap.yml"
        config.write_text("transport: pigeon\n")

        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check", "--json"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["valid"] is False


class TestTransportHandshakeCommand:
    def _config(self, tmp_path, template: str) -> Path:
        extra = "tls:\n  poll_interval: 0.05\n  programs:\n    - " + json.dumps(template) + "\n"
        return _make_config(tmp_path, [], extra)

    def test_handshake_ready(self, tmp_path, fake_client):
        config = self._config(tmp_path, fake_client.template(chunks=[fake_client.gnutls]))

        result = CliRunner().invoke(
            cli, ["--config", str(config), "transport", "handshake", "example.test"],
        )

        assert result.exit_code == 0
        assert "example.test:443" in result.output
        assert "ready" in result.output

    def test_handshake_untrusted_json(self, tmp_path, fake_client):
        tpl = fake_client.template(
            chunks=["- Peer's certificate is NOT trusted\n" + fake_client.gnutls],
        )
        config = self._config(tmp_path, tpl)

        result = CliRunner().invoke(
            cli,
            ["--config", str(config), "transport", "handshake", "example.test", "--port", "8443", "--json"],
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["port"] == 8443
        assert data["negotiation"]["reason"] == "untrusted"

    def test_handshake_trust_always_override(self, tmp_path, fake_client):
        tpl = fake_client.template(
            chunks=["- Peer's certificate is NOT trusted\n" + fake_client.gnutls],
        )
        config = self._config(tmp_path, tpl)

        result = CliRunner().invoke(
            cli,
            ["--config", str(config), "transport", "handshake", "example.test", "--trust", "always"],
        )

        assert result.exit_code == 0
