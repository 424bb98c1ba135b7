"""
Tests for the parkpulse CLI handlers.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

from parkpulse.api.auth_utils import claims_from_token
from parkpulse.api.deps import Settings
from parkpulse.cli import handle_migrate, handle_report, handle_token

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def cli_settings(settings: Settings) -> Settings:
    settings.rules_path = ROOT / "rules.yaml"
    settings.migrations_dir = ROOT / "migrations"
    return settings


class TestMigrate:
    def test_dry_run_then_apply(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        handle_migrate(cli_settings, argparse.Namespace(dry_run=True))
        assert "1 pending migration(s)." in capsys.readouterr().out

        handle_migrate(cli_settings, argparse.Namespace(dry_run=False))
        assert "Applied 1 migration(s)." in capsys.readouterr().out

        handle_migrate(cli_settings, argparse.Namespace(dry_run=True))
        assert "0 pending migration(s)." in capsys.readouterr().out


class TestReport:
    def test_prints_camel_case_dashboard(
        self, cli_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        handle_report(cli_settings, argparse.Namespace(period="24h"))

        payload = json.loads(capsys.readouterr().out)
        assert payload["period"] == "24h"
        assert payload["overview"]["totalEvents"] == 0

    def test_missing_rules_exits(self, cli_settings: Settings, tmp_path: Path) -> None:
        cli_settings.rules_path = tmp_path / "missing.yaml"
        with pytest.raises(SystemExit) as exc:
            handle_report(cli_settings, argparse.Namespace(period="7d"))
        assert exc.value.code == 1


def test_token_round_trips(cli_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
    handle_token(cli_settings, argparse.Namespace(user_id="ranger-1", role=["admin"], minutes=5))

    token = capsys.readouterr().out.strip()
    claims = claims_from_token(token, cli_settings.secret_key)
    assert claims.user_id == "ranger-1"
    assert claims.is_admin
