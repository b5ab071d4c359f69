"""
Unit Tests - Command Line
"""
import argparse

import pytest

from analytics_marts.cli import _parse_vars, main


@pytest.fixture
def paths(tmp_path):
    return ["--raw-path", str(tmp_path / "raw"), "--target-path", str(tmp_path / "target")]


class TestCli:
    """End-to-end command tests over a tiny generated dataset"""

    def test_generate_run_test_report(self, paths, tmp_path, capsys):
        assert main([*paths, "generate", "--users", "30", "--products", "6", "--events", "400", "--sales", "80"]) == 0
        assert (tmp_path / "raw" / "raw_events.parquet").exists()

        assert main([*paths, "run"]) == 0
        assert (tmp_path / "target" / "funnel_metrics.parquet").exists()

        assert main([*paths, "test"]) == 0

        capsys.readouterr()
        assert main([*paths, "report", "funnel_shape"]) == 0
        out = capsys.readouterr().out
        assert "Page View" in out
        assert "Purchase" in out

    def test_run_without_sources_fails(self, paths):
        assert main([*paths, "run"]) == 1

    def test_ls_selection(self, capsys):
        assert main(["ls", "--select", "+cohort_analysis"]) == 0

        names = [line.split("\t")[0] for line in capsys.readouterr().out.splitlines()]
        assert set(names) == {"stg_users", "stg_sales", "cohort_analysis"}
        assert names[-1] == "cohort_analysis"

    def test_unknown_selector_exits_with_error(self, capsys):
        assert main(["ls", "--select", "nope"]) == 2
        assert "nope" in capsys.readouterr().err

    def test_report_listing(self, capsys):
        assert main(["report"]) == 0

        assert "funnel_shape" in capsys.readouterr().out

    def test_unknown_report(self, paths):
        assert main([*paths, "report", "no_such_report"]) == 2


class TestParseVars:
    """Tests for --vars parsing"""

    def test_ints_and_strings(self):
        assert _parse_vars(["session_timeout_minutes=45", "label=beta"]) == {
            "session_timeout_minutes": 45,
            "label": "beta",
        }

    def test_missing_equals(self):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_vars(["oops"])
