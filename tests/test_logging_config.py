"""
Tests for occupancy_sdm.logging_config: per-run JSON Lines output with
run_id and structured step fields.
"""

import json
import logging
import os

import pytest

from occupancy_sdm.logging_config import (
    get_pipeline_logger,
    log_dropped_rows,
    log_step_summary,
    reset_logging,
    set_run_id,
    setup_logging,
)


@pytest.fixture
def run_log(tmp_dir):
    reset_logging()
    setup_logging(run_dir=tmp_dir, log_dir=os.path.join(tmp_dir, "logs"))
    set_run_id("run00001")
    path = os.path.join(tmp_dir, "pipeline.jsonl")

    def read():
        for handler in logging.getLogger().handlers:
            handler.flush()
        with open(path) as f:
            return [json.loads(line) for line in f if line.strip()]

    yield read
    reset_logging()
    setup_logging()


class TestJsonLog:

    def test_run_id_on_child_logger_records(self, run_log):
        get_pipeline_logger("occupancy_sdm.test").info("hello %s", "world")
        entry = run_log()[-1]
        assert entry["message"] == "hello world"
        assert entry["run_id"] == "run00001"
        assert entry["level"] == "INFO"

    def test_step_summary_fields(self, run_log):
        log = get_pipeline_logger("occupancy_sdm.test")
        log_step_summary(log, "grid_observations", "success",
                         input_summary={"observations": 10},
                         output_summary={"cells": 2}, timing_seconds=0.5)
        entry = run_log()[-1]
        assert entry["step_name"] == "grid_observations"
        assert entry["output_summary"] == {"cells": 2}
        assert entry["timing_seconds"] == 0.5

    def test_dropped_rows_counted_not_listed(self, run_log):
        log = get_pipeline_logger("occupancy_sdm.test")
        log_dropped_rows(log, "spatial_join", "outside raster extent", 7)
        log_dropped_rows(log, "spatial_join", "outside raster extent", 0)
        entries = [e for e in run_log() if "dropped_rows" in e]
        assert len(entries) == 1
        assert entries[0]["dropped_rows"] == {"outside raster extent": 7}

    def test_model_label_and_exception(self, run_log):
        log = get_pipeline_logger("occupancy_sdm.test")
        try:
            raise ValueError("bad formula")
        except ValueError:
            log.error("Model failed", exc_info=True, extra={"model_label": "Cloud"})
        entry = run_log()[-1]
        assert entry["model_label"] == "Cloud"
        assert "bad formula" in entry["exception"]
