import pytest

from fieldsync.infra.config import ConfigError, load_settings, settings_from_dict
from fieldsync.infra import paths


def test_missing_file_gives_defaults(tmp_path):
    s = load_settings(tmp_path / "nope.yaml")
    assert s.display.movement_threshold_m == 5.0
    assert s.reported.movement_threshold_m == 15.0
    assert s.display.smoothing_alpha > s.reported.smoothing_alpha
    assert s.matching.k == 2
    assert s.matching.radius_km == 0.05
    assert s.fleet.offline_after_sec == 60.0
    assert s.sos_duration_sec == 60.0


def test_partial_override_merges(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "profiles:\n  reported:\n    smoothing_alpha: 0.1\nmatching:\n  k: 3\n",
        encoding="utf-8",
    )
    s = load_settings(p)
    assert s.reported.smoothing_alpha == 0.1
    assert s.reported.movement_threshold_m == 15.0
    assert s.display.smoothing_alpha == 0.3
    assert s.matching.k == 3
    assert s.matching.stale_after_sec == 15.0


def test_repo_config_loads():
    s = load_settings(paths.CONFIG)
    assert s.display.name == "display"
    assert s.reported.name == "reported"


@pytest.mark.parametrize(
    "raw",
    [
        {"profiles": {"display": {"smoothing_alpha": 0}}},
        {"profiles": {"display": {"bogus": 1}}},
        {"matching": {"k": -1}},
        {"matching": {"radius_km": "far"}},
        {"fleet": {"offline_after_sec": -5}},
        {"sos": "soon"},
    ],
)
def test_invalid_values_raise(raw):
    with pytest.raises(ConfigError):
        settings_from_dict(raw)


def test_unparseable_yaml(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("profiles: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(p)
