"""Tests for grid generation and the sweep controller."""

import threading
import time

import pytest
import yaml

from ampsweep.errors import ConfigurationError, PipelineError, SweepExhaustedError
from ampsweep.models.sweep import Configuration, SweepResult
from ampsweep.models.table import AbundanceTable, PipelineOutput
from ampsweep.replicates import ReplicateGroups
from ampsweep.sweep import (
    SweepConfig,
    generate_grid,
    run_staged_sweep,
    run_sweep,
)

GROUPS = ReplicateGroups({"A": ["A1", "A2"]})


def _table(a1, a2):
    return AbundanceTable(
        counts={"A1": {s: 10 for s in a1}, "A2": {s: 10 for s in a2}}
    )


def _grid(*values):
    return [Configuration.of(truncQ=v) for v in values]


class TestConfiguration:
    """Tests for Configuration values."""

    def test_equality_and_hash(self):
        """Configurations compare and hash by their parameters."""
        a = Configuration.of({"truncQ": 2, "maxEE": 2.0})
        b = Configuration.of(truncQ=2, maxEE=2.0)
        assert a == b
        assert len({a, b}) == 1
        assert a != Configuration.of(truncQ=5, maxEE=2.0)

    def test_label_and_overrides(self):
        """Labels list parameters in declared order."""
        config = Configuration.of(truncQ=2, maxEE=0.00001)
        assert config.label == "truncQ=2,maxEE=1.00e-05"
        updated = config.with_values({"maxEE": 3})
        assert updated.as_dict() == {"truncQ": 2, "maxEE": 3}
        assert config.get("maxEE") == 0.00001

    def test_json_round_trip(self):
        """Configurations survive model serialization."""
        config = Configuration.of(truncQ=2, trim=True, name="x")
        assert Configuration.model_validate_json(config.model_dump_json()) == config


class TestGrid:
    """Tests for grid generation."""

    def test_cartesian_product_in_order(self):
        """Grid points follow declaration order with the last param fastest."""
        grid = generate_grid(
            {"truncQ": {"values": [2, 5]}, "maxEE": {"values": [1, 2]}},
            fixed={"minLen": 50},
        )
        assert [c.label for c in grid] == [
            "minLen=50,truncQ=2,maxEE=1",
            "minLen=50,truncQ=2,maxEE=2",
            "minLen=50,truncQ=5,maxEE=1",
            "minLen=50,truncQ=5,maxEE=2",
        ]

    def test_swept_value_overrides_fixed(self):
        """A swept parameter replaces its fixed value in place."""
        grid = generate_grid(
            {"maxEE": {"values": [1]}}, fixed={"maxEE": 2, "truncQ": 2}
        )
        assert grid[0].as_dict() == {"maxEE": 1, "truncQ": 2}

    def test_missing_values(self):
        """Parameters without values are rejected."""
        with pytest.raises(ConfigurationError, match="truncQ"):
            generate_grid({"truncQ": {}})


class TestRunSweep:
    """Tests for run_sweep."""

    def test_picks_most_repeatable_point(self):
        """Grid 18/20/22: point 20 has identical replicates and wins."""
        tables = {
            18: _table({"x", "y"}, {"x"}),
            20: _table({"x", "y"}, {"x", "y"}),
            22: _table({"x", "y", "z"}, {"x"}),
        }
        result = run_sweep(
            _grid(18, 20, 22), lambda c: tables[c.get("truncQ")], GROUPS
        )
        assert result.scores == [0.5, 1.0, pytest.approx(1 / 3)]
        assert result.best() == Configuration.of(truncQ=20)
        assert result.skipped() == []

    def test_preserves_grid_order(self):
        """Rows keep the grid's order, not sorted by score or value."""
        result = run_sweep(
            _grid(30, 10, 20), lambda c: _table({"x"}, {"x"}), GROUPS
        )
        assert [r.configuration.get("truncQ") for r in result.rows] == [30, 10, 20]
        assert [r.index for r in result.rows] == [0, 1, 2]

    def test_ties_resolve_to_earliest(self):
        """Equal scores pick the first configuration in the grid."""
        result = run_sweep(
            _grid(5, 2, 8), lambda c: _table({"x"}, {"x"}), GROUPS
        )
        assert result.best() == Configuration.of(truncQ=5)

    def test_failed_points_are_skipped(self):
        """A failing pipeline marks the point undefined and continues."""
        calls = []

        def pipeline(config):
            calls.append(config.get("truncQ"))
            if config.get("truncQ") == 20:
                msg = "denoiser did not converge"
                raise PipelineError(msg, config)
            return _table({"x", "y"}, {"x"})

        result = run_sweep(_grid(18, 20, 22), pipeline, GROUPS)
        assert calls == [18, 20, 22]
        assert result.scores == [0.5, None, 0.5]
        assert result.skipped() == [
            (Configuration.of(truncQ=20), "denoiser did not converge")
        ]
        assert result.best() == Configuration.of(truncQ=18)

    def test_undefined_never_best(self):
        """A failed point is not chosen even when others score 0.0."""

        def pipeline(config):
            if config.get("truncQ") == 1:
                raise RuntimeError("boom")
            return _table({"x"}, {"y"})

        result = run_sweep(_grid(1, 2), pipeline, GROUPS)
        assert result.scores == [None, 0.0]
        assert result.best() == Configuration.of(truncQ=2)

    def test_all_failed(self):
        """A sweep where every point fails raises SweepExhaustedError."""

        def pipeline(config):
            msg = "no reads left"
            raise PipelineError(msg, config)

        with pytest.raises(SweepExhaustedError) as exc_info:
            run_sweep(_grid(1, 2), pipeline, GROUPS)

        partial = exc_info.value.result
        assert partial.scores == [None, None]
        with pytest.raises(SweepExhaustedError):
            partial.best()

    def test_configuration_errors_propagate(self):
        """Matcher errors are not treated as pipeline failures."""
        groups = ReplicateGroups({"A": ["A1", "A2"], "B": ["B1", "B2"]})
        with pytest.raises(ConfigurationError, match="B1"):
            run_sweep(_grid(1), lambda c: _table({"x"}, {"x"}), groups)

    def test_empty_or_duplicate_grid(self):
        """Empty and duplicated grids are rejected."""
        with pytest.raises(ConfigurationError):
            run_sweep([], lambda c: _table({"x"}, {"x"}), GROUPS)
        with pytest.raises(ConfigurationError, match="duplicate"):
            run_sweep(_grid(1, 1), lambda c: _table({"x"}, {"x"}), GROUPS)

    def test_keeps_best_output_only(self):
        """The pipeline output of the best point is attached to the result."""
        outputs = {
            1: PipelineOutput(table=_table({"x", "y"}, {"x"})),
            2: PipelineOutput(table=_table({"x"}, {"x"})),
        }
        result = run_sweep(_grid(1, 2), lambda c: outputs[c.get("truncQ")], GROUPS)
        assert result.best_output is outputs[2]

    def test_on_result_callback(self):
        """Each row is reported as it is recorded."""
        seen = []
        run_sweep(
            _grid(1, 2),
            lambda c: _table({"x"}, {"x"}),
            GROUPS,
            on_result=seen.append,
        )
        assert [row.index for row in seen] == [0, 1]

    def test_group_scores_recorded(self):
        """Rows keep the per-group scores."""
        result = run_sweep(_grid(1), lambda c: _table({"x", "y"}, {"x"}), GROUPS)
        assert result.rows[0].group_scores == {"A": 0.5}
        assert result.rows[0].n_groups == 1

    def test_independent_sweeps(self):
        """Each call owns its result set."""
        first = run_sweep(_grid(1), lambda c: _table({"x"}, {"x"}), GROUPS)
        second = run_sweep(_grid(2, 3), lambda c: _table({"x"}, {"x"}), GROUPS)
        assert len(first.rows) == 1
        assert len(second.rows) == 2

    def test_concurrent_keeps_grid_order(self):
        """With workers, slower early points still come first."""
        active = []
        peak = []
        lock = threading.Lock()

        def pipeline(config):
            with lock:
                active.append(config)
                peak.append(len(active))
            # Earlier points finish last
            time.sleep(0.05 * (4 - config.get("truncQ")))
            with lock:
                active.remove(config)
            if config.get("truncQ") == 2:
                return _table({"x"}, {"x"})
            return _table({"x", "y"}, {"x"})

        result = run_sweep(_grid(0, 1, 2, 3), pipeline, GROUPS, max_workers=4)
        assert [r.index for r in result.rows] == [0, 1, 2, 3]
        assert result.scores == [0.5, 0.5, 1.0, 0.5]
        assert result.best() == Configuration.of(truncQ=2)
        assert max(peak) > 1


class TestStagedSweep:
    """Tests for run_staged_sweep."""

    def test_later_stage_uses_earlier_best(self):
        """The expected-error stage runs with the best truncation value."""
        seen = []

        def pipeline(config):
            seen.append(config.as_dict())
            truncq = config.get("truncQ")
            maxee = config.get("maxEE")
            if truncq == 5 and maxee == 3:
                return _table({"x", "y"}, {"x", "y"})
            if truncq == 5:
                return _table({"x", "y", "z"}, {"x", "y"})
            return _table({"x", "y"}, {"x"})

        stages_seen = []
        results = run_staged_sweep(
            [{"truncQ": {"values": [2, 5]}}, {"maxEE": {"values": [1, 3]}}],
            pipeline,
            GROUPS,
            fixed={"truncQ": 2, "maxEE": 2},
            on_stage=stages_seen.append,
        )

        assert len(results) == 2
        assert stages_seen == results
        assert results[0].best() == Configuration.of(truncQ=5, maxEE=2)
        assert results[1].best() == Configuration.of(truncQ=5, maxEE=3)
        assert seen[2:] == [{"truncQ": 5, "maxEE": 1}, {"truncQ": 5, "maxEE": 3}]
        assert results[1].name == "sweep-stage1"

    def test_exhausted_stage_stops(self):
        """An exhausted stage raises and the later stages never run."""
        calls = []

        def pipeline(config):
            calls.append(config)
            if config.get("maxEE") != 2:
                raise RuntimeError("fail")
            return _table({"x"}, {"x"})

        with pytest.raises(SweepExhaustedError):
            run_staged_sweep(
                [
                    {"truncQ": {"values": [2]}},
                    {"maxEE": {"values": [1, 3]}},
                    {"minLen": {"values": [50]}},
                ],
                pipeline,
                GROUPS,
                fixed={"maxEE": 2},
            )
        assert len(calls) == 3

    def test_needs_stages(self):
        """Zero stages is a configuration error."""
        with pytest.raises(ConfigurationError):
            run_staged_sweep([], lambda c: _table({"x"}, {"x"}), GROUPS)


class TestSweepConfig:
    """Tests for SweepConfig loading."""

    def test_from_yaml(self, tmp_path):
        """Sweep files declare pipeline, parameters, fixed values and stages."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            "name: filt\n"
            "pipeline: Rscript dada2.R --truncq {{truncQ}} --out {{outdir}}\n"
            "replicates: samples.tsv\n"
            "detection_threshold: 1\n"
            "fixed:\n  truncQ: 2\n  maxEE: 2\n"
            "parameters:\n"
            "  truncQ:\n    values: [2, 5, 10]\n"
            "  maxEE:\n    values: [1, 3]\n"
            "stages:\n  - [truncQ]\n  - [maxEE]\n"
        )
        config = SweepConfig.from_yaml(path)
        assert config.name == "filt"
        assert config.pipeline[:2] == ["Rscript", "dada2.R"]
        assert config.detection_threshold == 1
        stages = config.stage_parameters()
        assert list(stages[0]) == ["truncQ"]
        assert stages[1]["maxEE"]["values"] == [1, 3]

    def test_unstaged_sweeps_everything(self, tmp_path):
        """Without stages all parameters form one grid."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            "pipeline: [run.sh, '{{outdir}}']\n"
            "parameters:\n  a:\n    values: [1]\n  b:\n    values: [2]\n"
        )
        config = SweepConfig.from_yaml(path)
        assert config.pipeline == ["run.sh", "{{outdir}}"]
        assert [list(s) for s in config.stage_parameters()] == [["a", "b"]]

    def test_missing_fields(self, tmp_path):
        """pipeline and parameters are required."""
        path = tmp_path / "sweep.yaml"
        path.write_text("parameters:\n  a:\n    values: [1]\n")
        with pytest.raises(ConfigurationError, match="pipeline"):
            SweepConfig.from_yaml(path)

    def test_unknown_stage_parameter(self, tmp_path):
        """Stages may only name declared parameters."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            "pipeline: run.sh\n"
            "parameters:\n  a:\n    values: [1]\n"
            "stages:\n  - [b]\n"
        )
        with pytest.raises(ConfigurationError, match="'b'"):
            SweepConfig.from_yaml(path)

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("detection_threshold", 1.5),
            ("detection_threshold", -1),
            ("detection_threshold", True),
            ("max_workers", "four"),
            ("max_workers", 0),
        ],
    )
    def test_rejects_bad_integer_settings(self, tmp_path, key, value):
        """Threshold and worker count must be integers in range."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "pipeline": "run.sh",
                    "parameters": {"a": {"values": [1]}},
                    key: value,
                }
            )
        )
        with pytest.raises(ConfigurationError, match=key):
            SweepConfig.from_yaml(path)

    def test_accepts_integer_settings(self, tmp_path):
        """Integer threshold and worker count load as given."""
        path = tmp_path / "sweep.yaml"
        path.write_text(
            "pipeline: run.sh\n"
            "parameters:\n  a:\n    values: [1]\n"
            "detection_threshold: 0\n"
            "max_workers: 4\n"
        )
        config = SweepConfig.from_yaml(path)
        assert config.detection_threshold == 0
        assert config.max_workers == 4


class TestSweepResult:
    """Tests for SweepResult lookups."""

    def test_score_of(self):
        """Scores are looked up by configuration equality."""
        result = run_sweep(_grid(1, 2), lambda c: _table({"x"}, {"x"}), GROUPS)
        assert result.score_of(Configuration.of(truncQ=2)) == 1.0
        with pytest.raises(KeyError):
            result.score_of(Configuration.of(truncQ=9))

    def test_json_round_trip(self):
        """Results serialize with their rows."""
        result = run_sweep(_grid(1, 2), lambda c: _table({"x"}, {"x"}), GROUPS)
        loaded = SweepResult.model_validate_json(result.model_dump_json())
        assert loaded.configurations == result.configurations
        assert loaded.scores == result.scores
