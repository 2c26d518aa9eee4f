"""
Integration tests for catalog/cli.py

Each command runs end to end against a DuckDB file in tmp_path, with the
remote store and GitHub client replaced.
"""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from catalog.cli import build_parser, main
from catalog.exceptions import RepoNotFoundError
from catalog.github import RepoInfo


@pytest.fixture
def cli_env(fake_remote):
    """Patch out logging setup, seed data and the HTTP remote."""
    with patch("catalog.cli.setup_logging"), \
            patch("catalog.cli.load_default_data", return_value={}), \
            patch("catalog.cli.HttpRemoteStore", return_value=fake_remote):
        yield fake_remote


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "catalog.duckdb")


@pytest.fixture
def backup_file(tmp_path, sample_projects, sample_categories):
    path = tmp_path / "backup.json"
    path.write_text(json.dumps({
        "projects": [p.to_dict() for p in sample_projects],
        "categories": [c.to_dict() for c in sample_categories],
        "favorites": ["3"],
    }), encoding="utf-8")
    return path


class TestParser:
    """Tests for argument parsing."""

    def test_invalid_sort_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["list", "--sort", "forks-desc"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """End-to-end command runs."""

    def test_restore_then_list(self, cli_env, db_path, backup_file, capsys):
        assert main(["--db", db_path, "restore", str(backup_file)]) == 0
        capsys.readouterr()

        assert main(["--db", db_path, "list", "--sort", "stars-desc"]) == 0
        lines = capsys.readouterr().out.strip().splitlines()

        assert "globex/Alpha" in lines[0]
        assert "acme/beta" in lines[1]
        assert lines[2].startswith("*")
        assert "initech/gamma" in lines[2]
        assert lines[-1] == "3 projects, 3 languages, 10.5K stars"

    def test_list_filters(self, cli_env, db_path, backup_file, capsys):
        main(["--db", db_path, "restore", str(backup_file)])
        capsys.readouterr()

        main(["--db", db_path, "list", "--category", "cli", "--search", "terminal"])
        out = capsys.readouterr().out

        assert "initech/gamma" in out
        assert "globex/Alpha" not in out

    def test_restore_with_push_reports_failure(self, cli_env, db_path, backup_file, capsys):
        cli_env.failing = True

        assert main(["--db", db_path, "restore", str(backup_file), "--push"]) == 1
        assert "remote sync failed" in capsys.readouterr().out

    def test_export(self, cli_env, db_path, backup_file, tmp_path):
        main(["--db", db_path, "restore", str(backup_file)])
        output = tmp_path / "export.json"

        assert main(["--db", db_path, "export", "--output", str(output)]) == 0

        exported = json.loads(output.read_text(encoding="utf-8"))
        assert [p["id"] for p in exported["projects"]] == ["1", "2", "3"]
        assert exported["favorites"] == ["3"]

    def test_sync(self, cli_env, db_path, backup_file, capsys):
        main(["--db", db_path, "restore", str(backup_file)])

        assert main(["--db", db_path, "sync"]) == 0
        assert "Synced 3 projects and 2 categories" in capsys.readouterr().out
        assert set(cli_env.projects) == {"1", "2", "3"}

    def test_sync_remote_down(self, cli_env, db_path, capsys):
        cli_env.failing = True
        assert main(["--db", db_path, "sync"]) == 1
        assert "Sync failed" in capsys.readouterr().out

    def test_import(self, cli_env, db_path, tmp_path, capsys):
        urls_file = tmp_path / "urls.txt"
        urls_file.write_text("https://github.com/acme/widget\n\nhttps://github.com/acme/gone\n", encoding="utf-8")

        async def fetch(url):
            if url.endswith("gone"):
                raise RepoNotFoundError("Repository not found: acme/gone")
            return RepoInfo(name="widget", owner="acme", stars=3)

        github = MagicMock()
        github.get_repo_info_from_url = AsyncMock(side_effect=fetch)
        with patch("catalog.cli.GitHubClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = github
            exit_code = main(["--db", db_path, "import", "--file", str(urls_file), "--delay", "0"])

        assert exit_code == 1
        assert "1 added, 0 skipped, 1 failed" in capsys.readouterr().out
        assert len(cli_env.projects) == 1

    def test_import_without_urls(self, cli_env, db_path):
        assert main(["--db", db_path, "import"]) == 2

    def test_restore_bad_json(self, cli_env, db_path, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{nope", encoding="utf-8")
        assert main(["--db", db_path, "restore", str(path)]) == 1

    def test_restore_invalid_backup(self, cli_env, db_path, tmp_path):
        path = tmp_path / "invalid.json"
        path.write_text(json.dumps({"projects": "nope"}), encoding="utf-8")
        assert main(["--db", db_path, "restore", str(path)]) == 1
