import json
import logging
import sys

import pytest

import run_demo
from quant_engine.analysis import run_analysis
from quant_engine.backtest_engine import run_backtest
from quant_engine.report_generator import (
    build_json_payload,
    format_analysis_report,
    generate_json_report,
    generate_text_report,
)


@pytest.fixture
def result(random_walk_bars):
    return run_analysis("RAND", random_walk_bars)


class TestReports:

    def test_text_report(self, result):
        report = format_analysis_report(result)
        assert "QUANTITATIVE ANALYSIS REPORT" in report
        assert "Ticker: RAND" in report
        assert result.recommendation.action.value in report
        assert result.regime.overall.value in report

    def test_payload_without_series(self, result):
        payload = build_json_payload(result, include_series=False)
        assert "data" not in payload["analysis"]
        assert payload["metadata"]["bars"] == len(result.data)

    def test_json_report_with_backtest(self, result, tmp_path):
        backtest = run_backtest(result.data, "macd", symbol="RAND")
        path = generate_json_report(result, tmp_path / "out" / "rand.json", backtest)
        payload = json.loads(path.read_text())
        assert payload["metadata"]["ticker"] == "RAND"
        assert payload["analysis"]["recommendation"]["action"] == result.recommendation.action.value
        assert payload["backtest"]["strategy"] == "macd"
        assert len(payload["analysis"]["data"]) == len(result.data)

    def test_text_file(self, result, tmp_path):
        path = generate_text_report(result, tmp_path / "rand.txt")
        assert path.read_text().startswith("=" * 70)


class TestCommandLine:

    def test_csv_run(self, monkeypatch, tmp_path, random_walk_bars):
        csv_path = tmp_path / "rand.csv"
        random_walk_bars.to_csv(csv_path, index_label="Date")
        out_dir = tmp_path / "outputs"
        monkeypatch.setattr(sys, "argv", [
            "run_demo.py", "--csv", str(csv_path), "--symbol", "RAND",
            "--output-dir", str(out_dir), "--backtest", "sma",
        ])

        assert run_demo.main() == 0
        payload = json.loads((out_dir / "rand_analysis.json").read_text())
        assert payload["backtest"]["strategy"] == "sma"
        assert (out_dir / "rand_analysis.txt").exists()

    def test_missing_csv_fails(self, monkeypatch, tmp_path):
        monkeypatch.setattr(sys, "argv", [
            "run_demo.py", "--csv", str(tmp_path / "absent.csv"), "--output-dir", str(tmp_path),
        ])
        assert run_demo.main() == 1

    def test_degraded_stage_logged_once(self, monkeypatch, tmp_path, random_walk_bars, caplog):
        def broken(*args, **kwargs):
            raise RuntimeError("risk offline")

        monkeypatch.setattr("quant_engine.analysis.compute_risk_metrics", broken)
        csv_path = tmp_path / "rand.csv"
        random_walk_bars.to_csv(csv_path, index_label="Date")
        monkeypatch.setattr(sys, "argv", [
            "run_demo.py", "--csv", str(csv_path), "--symbol", "RAND",
            "--output-dir", str(tmp_path / "outputs"),
        ])

        with caplog.at_level(logging.INFO):
            assert run_demo.main() == 0
        degraded = [r for r in caplog.records if "risk offline" in r.getMessage()]
        assert len(degraded) == 1
        assert degraded[0].levelno == logging.WARNING
