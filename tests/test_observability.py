import csv
import json
import logging

import observability


def test_record_metric_appends_rows(tmp_path):
    path = tmp_path / "gauges" / "metrics.csv"
    observability.set_metrics_path(path)

    observability.record_metric("ranked_pools", 8)
    observability.record_metric("cycle_seconds", 1.25, labels={"network": "besc"})

    with path.open(newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["metric"] for row in rows] == ["ranked_pools", "cycle_seconds"]
    assert float(rows[1]["value"]) == 1.25
    assert json.loads(rows[1]["labels"]) == {"network": "besc"}


def test_timed_records_duration(tmp_path):
    path = tmp_path / "metrics.csv"
    observability.set_metrics_path(path)

    with observability.timed("oracle_scoring_seconds", oracles=2):
        pass

    with path.open(newline="") as handle:
        (row,) = list(csv.DictReader(handle))
    assert row["metric"] == "oracle_scoring_seconds"
    assert float(row["value"]) >= 0.0
    assert json.loads(row["labels"]) == {"oracles": 2}


def test_record_metric_never_raises(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    observability.set_metrics_path(blocker / "metrics.csv")

    observability.record_metric("ranked_pools", 1)


def test_log_event_emits_sorted_json(caplog):
    logger = logging.getLogger("test_observability_events")

    with caplog.at_level(logging.INFO, logger="test_observability_events"):
        observability.log_event(logger, "cycle_complete", ranked=3, extra=object())

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "cycle_complete"
    assert payload["ranked"] == 3
    assert payload["extra"].startswith("<object")
