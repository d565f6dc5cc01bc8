"""Tests for the job entry points."""

import json

import pytest

from ratepilot import cli
from ratepilot.services.config_service import PricingConfigMissingError


@pytest.fixture(autouse=True)
def no_log_files(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)


class TestParser:

    def test_recalculate_args(self):
        args = cli.build_parser().parse_args(
            ["recalculate", "--hotel-id", "42", "--start", "2025-06-01", "--end", "2025-06-30", "--push"]
        )
        assert (args.command, args.hotel_id, args.start, args.end, args.push) == (
            "recalculate", "42", "2025-06-01", "2025-06-30", True
        )

    def test_recalculate_requires_range(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["recalculate", "--hotel-id", "42"])

    def test_promote_dates_repeatable(self):
        args = cli.build_parser().parse_args(
            ["promote", "--hotel-id", "42", "--date", "2025-06-01", "--date", "2025-06-02"]
        )
        assert args.dates == ["2025-06-01", "2025-06-02"]


class TestMain:

    def test_missing_config_exits_non_zero(self, monkeypatch):
        async def fake_main(args):
            raise PricingConfigMissingError(args.hotel_id, "rate ID map is missing")

        monkeypatch.setattr(cli, "_main", fake_main)
        assert cli.main(["context", "--hotel-id", "42"]) == 2

    def test_prints_json_result(self, monkeypatch, capsys):
        async def fake_main(args):
            return {"hotel_id": args.hotel_id, "config": {}}

        monkeypatch.setattr(cli, "_main", fake_main)
        assert cli.main(["context", "--hotel-id", "42"]) == 0
        assert json.loads(capsys.readouterr().out) == {"hotel_id": "42", "config": {}}
