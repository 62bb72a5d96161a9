"""Tests for the livesync CLI commands."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import yaml
from typer.testing import CliRunner

from livesync.cli import app
from livesync.errors import IntegrityFault
from livesync.store.couchdb import CouchDBClient

from conftest import COUCH_DB, COUCH_URL, write_note

runner = CliRunner()

ENV_VARS = ("COUCHDB_URL", "COUCHDB_USER", "COUCHDB_PASSWORD", "COUCHDB_DATABASE", "VAULT_ROOT")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path / "fakehome")
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def config_file(tmp_path, vault):
    path = tmp_path / "livesync.yaml"
    path.write_text(yaml.safe_dump({
        "couchdb": {"url": COUCH_URL, "database": COUCH_DB, "username": "admin", "password": "password"},
        "vault_root": str(vault),
        "extensions": [".md"],
    }))
    return path


@pytest.fixture()
def fake_store(couch):
    """Route every client the CLI builds to the in-memory CouchDB."""

    def build(config):
        return CouchDBClient(
            config.couchdb.url,
            config.couchdb.database,
            username=config.couchdb.username,
            password=config.couchdb.password,
            transport=httpx.MockTransport(couch.handler),
        )

    with patch("livesync.sync.engine.client_from_config", side_effect=build), \
         patch("livesync.cli.client_from_config", side_effect=build):
        yield couch


def invoke(config_file, *args, **kwargs):
    return runner.invoke(app, ["--config", str(config_file), *args], **kwargs)


# ---------------------------------------------------------------------------
# Global options / config errors
# ---------------------------------------------------------------------------


class TestConfigHandling:
    def test_missing_config_file(self):
        result = runner.invoke(app, ["--config", "nope.yaml", "sync", "--all"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_missing_credentials_reported(self, vault):
        result = runner.invoke(app, ["sync", "--all"], env={"VAULT_ROOT": str(vault)})
        assert result.exit_code == 1
        assert "Configuration errors" in result.output
        assert "COUCHDB_USER is required" in result.output

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "sync" in result.output
        assert "watch" in result.output


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSyncCommand:
    def test_requires_a_mode(self, config_file, fake_store):
        result = invoke(config_file, "sync")
        assert result.exit_code == 1
        assert "specify files, --git, or --all" in result.output

    def test_sync_files(self, config_file, fake_store, vault):
        write_note(vault, "a.md", "# A")
        result = invoke(config_file, "sync", "a.md")

        assert result.exit_code == 0, result.output
        assert fake_store.docs["a.md"]["type"] == "plain"
        assert len(fake_store.chunks()) == 1

    def test_sync_all(self, config_file, fake_store, vault):
        write_note(vault, "a.md", "# A")
        write_note(vault, "notes/b.md", "# B")
        write_note(vault, "skip.png", "binary-ish")

        result = invoke(config_file, "sync", "--all")

        assert result.exit_code == 0, result.output
        assert {"a.md", "notes/b.md"} <= set(fake_store.docs)
        assert "skip.png" not in fake_store.docs

    def test_dry_run_writes_nothing(self, config_file, fake_store, vault):
        write_note(vault, "a.md", "# A")
        result = invoke(config_file, "--dry-run", "sync", "a.md")

        assert result.exit_code == 0, result.output
        assert "Dry Run" in result.output
        assert fake_store.mutations() == []

    def test_delete_flag(self, config_file, fake_store):
        fake_store.seed({"_id": "gone.md", "type": "plain", "path": "gone.md", "children": [],
                         "ctime": 1, "mtime": 1, "size": 0})
        result = invoke(config_file, "sync", "--delete", "gone.md")

        assert result.exit_code == 0, result.output
        assert "gone.md" not in fake_store.docs

    def test_missing_file_is_skipped(self, config_file, fake_store):
        result = invoke(config_file, "sync", "missing.md")
        assert result.exit_code == 0, result.output
        assert fake_store.mutations() == []

    def test_errors_exit_nonzero(self, config_file, fake_store):
        result = invoke(config_file, "sync", "../outside.md")
        assert result.exit_code == 1
        assert "traversal" in result.output

    def test_git_mode_uses_range(self, config_file, fake_store):
        with patch("livesync.sync.engine.diff_revisions") as diff:
            diff.return_value.changed = []
            diff.return_value.removed = []
            result = invoke(config_file, "sync", "--git", "--range", "abc..def")

        assert result.exit_code == 0, result.output
        assert diff.call_args.args[1] == "abc..def"


# ---------------------------------------------------------------------------
# read / validate / provision
# ---------------------------------------------------------------------------


class TestReadCommand:
    def test_prints_content(self, config_file, fake_store, vault):
        write_note(vault, "a.md", "hello\nworld")
        assert invoke(config_file, "sync", "a.md").exit_code == 0

        result = invoke(config_file, "read", "a.md")
        assert result.exit_code == 0
        assert result.output == "hello\nworld"

    def test_not_found(self, config_file, fake_store):
        result = invoke(config_file, "read", "nope.md")
        assert result.exit_code == 1
        assert "Not found" in result.output


class TestValidateCommand:
    def test_connected(self, config_file, fake_store):
        result = invoke(config_file, "validate")
        assert result.exit_code == 0, result.output
        assert "Connected" in result.output
        assert "0 documents" in result.output

    def test_unreachable_database(self, config_file, fake_store):
        fake_store.db_exists = False
        result = invoke(config_file, "validate")
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_roundtrip_cleans_up(self, config_file, fake_store):
        result = invoke(config_file, "validate", "--roundtrip")

        assert result.exit_code == 0, result.output
        assert "round trip" in result.output
        assert not [k for k in fake_store.docs if k.startswith("livesync-probe-")]

    def test_roundtrip_cleans_up_when_read_fails(self, config_file, fake_store):
        failing_read = AsyncMock(side_effect=IntegrityFault("check.md", "h:gone"))
        with patch("livesync.sync.engine.SyncEngine.read_file", failing_read):
            result = invoke(config_file, "validate", "--roundtrip")

        assert result.exit_code == 1
        assert "Missing chunk" in result.output
        assert not [k for k in fake_store.docs if k.startswith("livesync-probe-")]


class TestProvisionCommand:
    def test_creates_database_and_cors(self, config_file, fake_store):
        fake_store.db_exists = False
        result = invoke(config_file, "provision")

        assert result.exit_code == 0, result.output
        assert "Created" in result.output
        assert fake_store.db_exists
        assert fake_store.node_config["httpd/enable_cors"] == "true"

    def test_full_node_setup(self, config_file, fake_store):
        result = invoke(config_file, "provision")

        assert result.exit_code == 0, result.output
        assert fake_store.cluster_setup["action"] == "enable_single_node"
        assert fake_store.cluster_setup["port"] == 5984
        assert fake_store.node_config["chttpd/max_http_request_size"] == "4294967296"
        assert fake_store.node_config["couchdb/max_document_size"] == "50000000"
        assert fake_store.node_config["chttpd/require_valid_user"] == "true"

    def test_rerun_skips_cluster_setup(self, config_file, fake_store):
        assert invoke(config_file, "provision").exit_code == 0
        result = invoke(config_file, "provision")
        assert result.exit_code == 0, result.output
        assert "SKIP" in result.output

    def test_no_cors(self, config_file, fake_store):
        result = invoke(config_file, "provision", "--no-cors")
        assert result.exit_code == 0, result.output
        assert "Exists" in result.output
        assert "httpd/enable_cors" not in fake_store.node_config
        assert "chttpd/require_valid_user" in fake_store.node_config

    def test_database_only(self, config_file, fake_store):
        result = invoke(config_file, "provision", "--no-cluster", "--no-cors", "--no-node-settings")
        assert result.exit_code == 0, result.output
        assert fake_store.cluster_setup is None
        assert fake_store.node_config == {}


# ---------------------------------------------------------------------------
# init / hook
# ---------------------------------------------------------------------------


class TestInitCommand:
    def test_writes_template(self, tmp_path):
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert "couchdb:" in (tmp_path / ".livesync.yaml").read_text()

    def test_skips_existing(self, tmp_path):
        (tmp_path / ".livesync.yaml").write_text("vault_root: .\n")
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 1
        assert "SKIP" in result.output
        assert (tmp_path / ".livesync.yaml").read_text() == "vault_root: .\n"

    def test_force_overwrites(self, tmp_path):
        (tmp_path / ".livesync.yaml").write_text("vault_root: .\n")
        result = runner.invoke(app, ["init", "--force"])
        assert result.exit_code == 0
        assert "couchdb:" in (tmp_path / ".livesync.yaml").read_text()


class TestHookCommands:
    def test_install(self, config_file, tmp_path):
        (tmp_path / "repo.git" / "hooks").mkdir(parents=True)
        result = invoke(config_file, "hook", "install", str(tmp_path / "repo.git"))

        assert result.exit_code == 0, result.output
        hook = (tmp_path / "repo.git" / "hooks" / "post-receive").read_text()
        assert "hook run" in hook
        assert str(config_file.resolve()) in hook

    def test_install_without_hooks_dir(self, config_file, tmp_path):
        result = invoke(config_file, "hook", "install", str(tmp_path))
        assert result.exit_code == 1

    def test_run_syncs_initial_push(self, config_file, fake_store, vault):
        write_note(vault, "a.md", "# A")
        stdin = f"{'0' * 40} {'b' * 40} refs/heads/main\n"

        result = invoke(config_file, "hook", "run", input=stdin)

        assert result.exit_code == 0, result.output
        assert "1 files processed, 0 errors" in result.output
        assert "a.md" in fake_store.docs

    def test_run_ignores_other_branches(self, config_file, fake_store):
        stdin = f"{'a' * 40} {'b' * 40} refs/heads/feature\n"
        result = invoke(config_file, "hook", "run", input=stdin)
        assert result.exit_code == 0, result.output
        assert "0 files processed" in result.output
