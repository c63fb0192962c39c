import csv

from flocksim.app.headless import run_headless
from flocksim.sim.core.config import SimulationConfig


def _read_csv(path):
    with path.open(newline="") as handle:
        return list(csv.reader(handle))


def _small_config() -> SimulationConfig:
    return SimulationConfig(population=25, workers=2, spawn_radius=30.0)


def test_headless_log_header_and_rows(tmp_path):
    log_path = tmp_path / "run.csv"
    run_headless(steps=3, seed=1, log_path=log_path, deterministic_log=True, config=_small_config())
    rows = _read_csv(log_path)
    assert len(rows) == 4
    assert rows[0] == [
        "tick",
        "population",
        "neighbor_checks",
        "avg_speed",
        "centroid_x",
        "centroid_y",
        "spread",
        "tick_ms",
    ]
    assert [row[0] for row in rows[1:]] == ["0", "1", "2"]
    assert all(row[1] == "25" for row in rows[1:])
    assert all(row[-1] == "0.000" for row in rows[1:])


def test_headless_same_seed_same_log(tmp_path):
    first = tmp_path / "a.csv"
    second = tmp_path / "b.csv"
    run_headless(steps=5, seed=4, log_path=first, deterministic_log=True, config=_small_config())
    run_headless(steps=5, seed=4, log_path=second, deterministic_log=True, config=_small_config())
    assert first.read_text() == second.read_text()


def test_headless_without_log(tmp_path):
    run_headless(steps=2, seed=None, log_path=None, config=_small_config())


def test_headless_seed_leaves_caller_config_untouched(tmp_path):
    config = _small_config()
    run_headless(steps=1, seed=99, log_path=None, config=config)
    assert config.seed == 42
