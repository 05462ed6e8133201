"""
Unit tests for tracking configuration
"""

import json
import math

import numpy as np
import pytest

from fodtrack.tractography.config import ConfigurationError, TrackingConfig


class TestTrackingConfig:
    """Test parameter validation and derived values"""

    def test_defaults(self):
        config = TrackingConfig()

        assert config.num_samples == 4
        assert config.max_trials == 100
        assert config.n_envelope_probes == 100
        assert config.envelope_multiplier == 1.5
        assert config.extended_max_trials == 10000
        assert config.init_threshold == config.threshold

    def test_prob_threshold(self):
        config = TrackingConfig(threshold=0.2, num_samples=3)
        assert config.prob_threshold == pytest.approx(0.2 ** 3)

    def test_angle_derivations(self):
        config = TrackingConfig(step_size=0.5, max_angle=30.0)

        assert config.max_angle_rad == pytest.approx(math.pi / 6)
        assert config.sin_max_angle == pytest.approx(0.5)
        assert config.min_radius_of_curvature == pytest.approx(0.5 / (math.pi / 6))

    def test_sin_bound_clipped_beyond_right_angle(self):
        config = TrackingConfig(max_angle=150.0)
        assert config.sin_max_angle == pytest.approx(1.0)

    def test_init_direction_normalised(self):
        config = TrackingConfig(init_direction=(0.0, 3.0, 4.0))
        np.testing.assert_allclose(config.init_direction, (0.0, 0.6, 0.8))

    @pytest.mark.parametrize("params", [
        {'num_samples': 0},
        {'step_size': 0.0},
        {'step_size': -1.0},
        {'max_angle': 0.0},
        {'max_angle': 200.0},
        {'max_trials': 0},
        {'n_envelope_probes': 0},
        {'extended_max_trials': 0},
        {'envelope_multiplier': 0.5},
        {'threshold': -0.1},
        {'lmax': 3},
        {'sh_basis': 'unknown'},
        {'init_direction': (0.0, 0.0, 0.0)},
    ])
    def test_invalid_parameters(self, params):
        with pytest.raises(ConfigurationError):
            TrackingConfig(**params)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            TrackingConfig(num_samples=0)

    def test_frozen(self):
        config = TrackingConfig()
        with pytest.raises(AttributeError):
            config.num_samples = 2

    def test_with_lmax(self):
        config = TrackingConfig(threshold=0.3).with_lmax(8)

        assert config.lmax == 8
        assert config.threshold == 0.3
        assert config.prob_threshold == pytest.approx(0.3 ** 4)


class TestConfigSources:
    """Test dict, JSON and voxel-size based construction"""

    def test_from_dict(self):
        config = TrackingConfig.from_dict({'step_size': 0.2, 'init_direction': [1, 0, 0]})

        assert config.step_size == 0.2
        assert config.init_direction == (1.0, 0.0, 0.0)

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigurationError, match="Unknown"):
            TrackingConfig.from_dict({'stepsize': 0.2})

    def test_from_dict_rejects_derived_values(self):
        with pytest.raises(ConfigurationError):
            TrackingConfig.from_dict({'prob_threshold': 0.5})

    def test_json_round_trip(self, tmp_path):
        config = TrackingConfig(step_size=0.25, num_samples=2, init_direction=(0, 0, 1))
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config.to_dict()))

        assert TrackingConfig.from_json(str(path)) == config

    def test_from_json_invalid(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            TrackingConfig.from_json(str(path))

    def test_for_voxel_size_defaults(self):
        config = TrackingConfig.for_voxel_size([2.0, 2.0, 2.5])

        assert config.step_size == pytest.approx(1.0)
        assert config.max_angle == pytest.approx(45.0)

    def test_for_voxel_size_explicit_values_win(self):
        config = TrackingConfig.for_voxel_size([2.0, 2.0, 2.0], step_size=0.5, max_angle=None)

        assert config.step_size == 0.5
        assert config.max_angle == pytest.approx(22.5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
