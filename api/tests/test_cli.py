"""Tests for the management CLI argument handling and exit codes."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import cli
from services.migration_service import MigrationReport

pytestmark = pytest.mark.unit


async def _fake_with_session_maker(job):
    return await job(MagicMock())


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "migrate-completions" in capsys.readouterr().out


def test_invalid_today_exits_with_usage_error(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["recompute-streaks", "--today", "2024-02-30"])

    assert exc_info.value.code == 2
    assert "--today" in capsys.readouterr().err


@patch("cli._with_session_maker", _fake_with_session_maker)
@patch("services.migration_service.migrate_all", new_callable=AsyncMock)
def test_migrate_completions_success(mock_migrate_all, capsys):
    mock_migrate_all.return_value = MigrationReport(
        habits_found=2, habits_processed=2, records_migrated=5
    )

    assert cli.main(["migrate-completions", "--today", "2024-06-01"]) == 0

    assert mock_migrate_all.await_args.kwargs == {"today": "2024-06-01"}
    assert "Total completions migrated: 5" in capsys.readouterr().out


@patch("cli._with_session_maker", _fake_with_session_maker)
@patch("services.migration_service.migrate_all", new_callable=AsyncMock)
def test_migrate_completions_reports_failures(mock_migrate_all, capsys):
    mock_migrate_all.return_value = MigrationReport(
        habits_found=2,
        habits_processed=1,
        records_migrated=1,
        errors=1,
        failed_habit_ids=[9],
    )

    assert cli.main(["migrate-completions", "--today", "2024-06-01"]) == 1
    assert "Failed habit ids:          [9]" in capsys.readouterr().out


@patch("cli._with_session_maker", _fake_with_session_maker)
@patch("services.migration_service.recompute_all_streaks", new_callable=AsyncMock)
def test_recompute_streaks(mock_recompute, capsys):
    mock_recompute.return_value = 4

    assert cli.main(["recompute-streaks", "--today", "2024-06-01"]) == 0
    assert "Habits updated: 4" in capsys.readouterr().out


@patch("alembic.command.upgrade")
def test_migrate_passes_target(mock_upgrade):
    assert cli.main(["migrate", "0001"]) == 0

    config, target = mock_upgrade.call_args.args
    assert target == "0001"
    assert config.get_main_option("script_location").endswith("alembic")
