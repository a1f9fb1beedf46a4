"""
Integration tests for the command-line host.

Each test runs main() against a temporary SQLite file and inspects the
JSON printed to stdout and the exit code.
"""

import json
import logging

import pytest

from schema_migrator.__main__ import build_parser, main


@pytest.fixture(autouse=True)
def reset_cli_logger():
    """Detach the handler main() installs so it does not outlive capsys."""
    yield
    logger = logging.getLogger('schema_migrator')
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@pytest.fixture
def run_cli(db_path, capsys):
    """Run a CLI command and return (exit_code, parsed JSON output)."""
    def _run(*argv):
        exit_code = main(['--database', str(db_path), '--log-level', 'error', *argv])
        out = capsys.readouterr().out
        return exit_code, json.loads(out)

    return _run


class TestParser:
    """Test argument parsing."""

    def test_migrate_defaults_to_latest(self):
        args = build_parser().parse_args(['migrate'])
        assert args.command == 'migrate'
        assert args.version == 'latest'

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_rollback_requires_version(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['rollback'])


class TestCommands:
    """Test each command end to end."""

    def test_status_fresh_database(self, run_cli):
        exit_code, status = run_cli('status')

        assert exit_code == 0
        assert status == {
            'current_version': None,
            'latest_version': '1.2.0',
            'needs_upgrade': True,
            'pending_versions': ['1.0.0', '1.1.0', '1.2.0'],
        }

    def test_versions(self, run_cli):
        exit_code, versions = run_cli('versions')

        assert exit_code == 0
        assert [v['version'] for v in versions] == ['1.0.0', '1.1.0', '1.2.0']
        assert versions[0]['rollback_available'] is False
        assert versions[2]['scripts'] == [
            'create_user_sessions_table', 'create_cache_entries_table'
        ]

    def test_migrate_then_status(self, run_cli):
        exit_code, result = run_cli('migrate')
        assert exit_code == 0
        assert result['success'] is True
        assert result['migration_path'] == ['1.0.0', '1.1.0', '1.2.0']

        exit_code, status = run_cli('status')
        assert status['current_version'] == '1.2.0'
        assert status['needs_upgrade'] is False
        assert status['pending_versions'] == []

    def test_migrate_to_version(self, run_cli):
        exit_code, result = run_cli('migrate', '1.1.0')

        assert exit_code == 0
        assert result['version'] == '1.1.0'

    def test_migrate_unknown_version_fails(self, run_cli):
        exit_code, result = run_cli('migrate', '9.9.9')

        assert exit_code == 1
        assert result['success'] is False
        assert result['error_type'] == 'ConfigurationError'

    def test_rollback(self, run_cli):
        run_cli('migrate')
        exit_code, result = run_cli('rollback', '1.0.0')

        assert exit_code == 0
        assert result['executed_scripts'] == [
            'drop_session_cache_tables', 'remove_composite_indexes'
        ]

    def test_history(self, run_cli):
        run_cli('migrate', '1.0.0')
        run_cli('migrate', '1.2.0')
        exit_code, history = run_cli('history', '--limit', '1')

        assert exit_code == 0
        assert len(history) == 1
        assert history[0]['version'] == '1.2.0'
        assert history[0]['status'] == 'SUCCESS'

    def test_cleanup(self, run_cli):
        run_cli('migrate')
        exit_code, result = run_cli('cleanup', '--days', '30')

        assert exit_code == 0
        assert result == {'deleted': 0}

    def test_validate(self, run_cli):
        exit_code, report = run_cli('validate')
        assert exit_code == 1
        assert report['valid'] is False

        run_cli('migrate')
        exit_code, report = run_cli('validate')
        assert exit_code == 0
        assert report['valid'] is True


class TestConfiguration:
    """Test config file handling."""

    def test_missing_config_file(self, tmp_path, capsys):
        exit_code = main(['--config', str(tmp_path / 'missing.yaml'), 'status'])

        assert exit_code == 1
        output = json.loads(capsys.readouterr().out)
        assert output['error_type'] == 'ConfigurationError'

    def test_config_file_database(self, tmp_path, capsys):
        db_file = tmp_path / 'from_config.db'
        config_path = tmp_path / 'config.yaml'
        config_path.write_text(
            f"database_url: {db_file}\nlog_level: error\napplied_by: ci\n"
        )

        assert main(['--config', str(config_path), 'migrate', '1.0.0']) == 0
        capsys.readouterr()

        assert db_file.exists()


class TestFailures:
    """Database and logging behaviour across failing and repeated runs."""

    def test_unopenable_database_reports_json(self, tmp_path, capsys):
        db_file = tmp_path / 'no_such_dir' / 'schema.db'

        exit_code = main(['--database', str(db_file), '--log-level', 'error', 'status'])

        assert exit_code == 1
        output = json.loads(capsys.readouterr().out)
        assert output['error_type'] == 'OperationalError'
        assert 'unable to open database file' in output['error']

    def test_repeated_runs_keep_one_handler(self, run_cli):
        run_cli('status')
        run_cli('status')

        assert len(logging.getLogger('schema_migrator').handlers) == 1
