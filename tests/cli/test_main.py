"""Tests for the kpi-rollup command line interface."""

import asyncio
import json
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

import cli.main as cli_mod
from kpi_rollup.data import RecordStore
from kpi_rollup.output import TrendPlotReport

CLEAN_ENV = {
    "KPI_ROLLUP_STORE": None,
    "KPI_ROLLUP_DSN": None,
    "KPI_ROLLUP_SCHEMA": None,
    "KPI_ROLLUP_LOG_LEVEL": None,
    "KPI_ROLLUP_LOG_FORMAT": None,
}


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def invoke(args, **kwargs):
    env = {**CLEAN_ENV, **kwargs.pop("env", {})}
    return CliRunner().invoke(cli_mod.cli, args, env=env, **kwargs)


def test_metrics_lists_sample_projects():
    r = invoke(["metrics"])
    assert r.exit_code == 0, r.output
    assert "p1: Core staff retention [Workforce operations]" in r.output
    assert "k3  Average handle time (AHT)  425.0 s / target 420.0 s (off target" in r.output


def test_series_json(store_file):
    r = invoke(["--store", str(store_file), "series", "--metric", "k1", "--granularity", "quarter"])
    assert r.exit_code == 0, r.output
    payload = json.loads(r.output)
    assert payload["granularity"] == "Quarter"
    assert payload["buckets"] == [
        {"label": "2024-Q1", "value": 80.0, "sort_key": "2024-Q1", "count": 3}
    ]


def test_series_store_from_env(store_file):
    r = invoke(["series", "--metric", "k3"], env={"KPI_ROLLUP_STORE": str(store_file)})
    assert r.exit_code == 0, r.output
    labels = [bucket["label"] for bucket in json.loads(r.output)["buckets"]]
    assert labels == ["2024-05", "2024-06"]


def test_compare_default_pair_text():
    r = invoke(["compare", "--metric", "k3"])
    assert r.exit_code == 0, r.output
    assert r.output.strip() == (
        "k3 2024-06 vs 2024-05: 425.0 s vs 440.0 s, -15.0 s (-3.4%) improved"
    )


def test_compare_explicit_labels_json():
    r = invoke(
        ["compare", "--metric", "k1", "--granularity", "Quarter", "--a", "2024-Q2", "--json"]
    )
    assert r.exit_code == 0, r.output
    payload = json.loads(r.output)
    assert payload["label_a"] == "2024-Q2"
    assert payload["label_b"] == "2024-Q1"
    assert payload["improved"] is True
    assert payload["a_present"] is True


def test_compare_unknown_metric():
    r = invoke(["compare", "--metric", "nope"])
    assert r.exit_code == 2
    assert "Unknown metric 'nope'" in r.output


def test_compare_without_data_at_granularity():
    r = invoke(["compare", "--metric", "k1-2", "--granularity", "Month"])
    assert r.exit_code == 1
    assert "No data for k1-2 at Month granularity" in r.output


def test_records_csv_extends_store(tmp_path):
    records = tmp_path / "records.csv"
    records.write_text("metric_id,period,value\nk3,2024-07,410\n")
    r = invoke(["--records", str(records), "compare", "--metric", "k3"])
    assert r.exit_code == 0, r.output
    assert r.output.startswith("k3 2024-07 vs 2024-06: 410.0 s vs 425.0 s")


def test_records_csv_unknown_metric(tmp_path):
    records = tmp_path / "records.csv"
    records.write_text("metric_id,period,value\nk404,2024-07,410\n")
    r = invoke(["--records", str(records), "metrics"])
    assert r.exit_code == 1
    assert "unknown metrics: k404" in r.output


def test_strict_and_lenient_store_loading(tmp_path):
    path = tmp_path / "store.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "k1",
                    "chartData": [
                        {"month": "2024-01", "value": 1},
                        {"month": "2024-1x", "value": 2},
                    ],
                }
            ]
        )
    )
    r = invoke(["--store", str(path), "series", "--metric", "k1"])
    assert r.exit_code == 1
    assert "Could not load the record store" in r.output

    r = invoke(["--store", str(path), "--lenient", "series", "--metric", "k1"])
    assert r.exit_code == 0, r.output
    assert [b["label"] for b in json.loads(r.output)["buckets"]] == ["2024-01"]


def test_store_loaded_from_database(monkeypatch, sample_store):
    calls = []

    async def _fake_fetch_store(dsn, schema, *, strict):
        calls.append((dsn, schema, strict))
        return sample_store

    monkeypatch.setattr(cli_mod, "_fetch_store", _fake_fetch_store)
    r = invoke(
        ["--schema", "dash", "series", "--metric", "k1-2"],
        env={"KPI_ROLLUP_DSN": "postgresql://u:p@h/db"},
    )
    assert r.exit_code == 0, r.output
    assert calls == [("postgresql://u:p@h/db", "dash", True)]
    assert json.loads(r.output)["granularity"] == "Quarter"


def test_chart(monkeypatch, tmp_path):
    captured = {}

    def _fake_plot(view, *, output_dir, filename, config):
        captured.update(view=view, output_dir=output_dir, filename=filename, config=config)
        return TrendPlotReport(path=Path(output_dir) / filename, points=len(view.buckets))

    monkeypatch.setattr(cli_mod, "generate_trend_plot", _fake_plot)
    r = invoke(
        [
            "chart",
            "--metric",
            "k1",
            "--granularity",
            "HalfYear",
            "--output-dir",
            str(tmp_path),
            "--hide-target",
        ]
    )
    assert r.exit_code == 0, r.output
    assert captured["filename"] == "k1_halfyear.png"
    assert captured["config"].show_target is False
    assert captured["view"].labels == ["2023-H2", "2024-H1"]
    assert "(2 points)" in r.output


def test_export_csv(tmp_path):
    output = tmp_path / "exports" / "series.csv"
    r = invoke(["export", "--metric", "k3", "--metric", "k1-2", "--output", str(output)])
    assert r.exit_code == 0, r.output
    lines = output.read_text().splitlines()
    assert lines[0] == "metric_id,granularity,period,value,count"
    assert lines[1] == "k3,Month,2023-07,495.0,1"
    assert len(lines) == 1 + 12 + 6


def test_export_rejects_unknown_suffix(tmp_path):
    r = invoke(["export", "--output", str(tmp_path / "series.xlsx")])
    assert r.exit_code == 2
    assert "must end with .csv or .parquet" in r.output


def test_export_without_buckets(tmp_path):
    output = str(tmp_path / "a.csv")
    r = invoke(["export", "--metric", "k1-2", "--granularity", "Month", "--output", output])
    assert r.exit_code == 1
    assert "No buckets" in r.output


def test_fetch_store_closes_reader(mocker, sample_store):
    reader = mocker.MagicMock()
    reader.fetch_store = mocker.AsyncMock(return_value=sample_store)
    reader.close = mocker.AsyncMock()
    reader_cls = mocker.patch.object(cli_mod, "KpiDatabaseReader", return_value=reader)

    store = asyncio.run(cli_mod._fetch_store("postgresql://db", "public", strict=False))

    assert isinstance(store, RecordStore)
    reader_cls.assert_called_once_with(dsn="postgresql://db", schema="public", strict=False)
    reader.close.assert_awaited_once()
