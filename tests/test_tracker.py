"""
Unit tests for tracking runs
"""

import numpy as np
import pytest

from fodtrack.io.streamlines import load_hdf5
from fodtrack.tractography.config import TrackingConfig
from fodtrack.tractography.field import SHField
from fodtrack.tractography.tracker import IFOD2Tracker, TrackingDiagnostics
from fodtrack.tractography.state import StreamlineDiagnostics

from conftest import Y20_SCALE, zonal_coefficients


@pytest.fixture
def lobe_volume():
    """10^3 volume with a z-oriented lobe everywhere"""
    data = np.zeros((10, 10, 10, 6))
    data[...] = zonal_coefficients(c20=0.5 / Y20_SCALE)
    return SHField(data)


@pytest.fixture
def seeds():
    return np.array([[4.5, 4.5, 4.5], [5.0, 5.0, 5.0], [4.0, 5.0, 6.0]])


class TestTrackStreamline:
    """Test tracking from a single seed"""

    def test_step_bound(self, lobe_volume, rng):
        config = TrackingConfig(init_direction=(0.0, 0.0, 1.0), step_size=0.2)
        tracker = IFOD2Tracker(lobe_volume, config, rng_seed=1, max_num_steps=10)

        points, diagnostics = tracker.track_streamline(np.array([4.5, 4.5, 1.0]), rng)

        assert points.shape == (11, 3)
        assert diagnostics.total_steps == 10
        assert diagnostics.termination_reason == 'max_num_steps'

    def test_seeding_failure(self, lobe_volume, rng):
        config = TrackingConfig(init_direction=(1.0, 0.0, 0.0))
        tracker = IFOD2Tracker(lobe_volume, config, rng_seed=1)

        points, diagnostics = tracker.track_streamline(np.array([4.5, 4.5, 4.5]), rng)

        assert len(points) == 1
        assert not diagnostics.seeded

    def test_leaves_volume(self, lobe_volume, rng):
        config = TrackingConfig(init_direction=(0.0, 0.0, 1.0), step_size=0.5)
        tracker = IFOD2Tracker(lobe_volume, config, rng_seed=1)

        points, diagnostics = tracker.track_streamline(np.array([4.5, 4.5, 4.5]), rng)

        assert diagnostics.termination_reason in ('low_envelope', 'max_trials')
        assert 2 <= len(points) <= 20
        assert np.all(np.diff(points[:, 2]) > 0)

    def test_lmax_resolved_from_field(self, lobe_volume):
        tracker = IFOD2Tracker(lobe_volume, rng_seed=1)
        assert tracker.config.lmax == 2


class TestTrack:
    """Test whole tracking runs"""

    def test_reproducible(self, lobe_volume, seeds):
        first, _ = IFOD2Tracker(lobe_volume, rng_seed=42).track(seeds, show_progress=False)
        second, _ = IFOD2Tracker(lobe_volume, rng_seed=42).track(seeds, show_progress=False)

        assert len(first) == len(second)
        for a, b in zip(first, second):
            np.testing.assert_array_equal(a, b)

    def test_streamlines_independent_of_other_seeds(self, lobe_volume, seeds):
        all_seeds, _ = IFOD2Tracker(lobe_volume, rng_seed=42).track(seeds, show_progress=False)
        first_only, _ = IFOD2Tracker(lobe_volume, rng_seed=42).track(seeds[:1], show_progress=False)

        np.testing.assert_array_equal(all_seeds[0], first_only[0])

    def test_diagnostics(self, lobe_volume, seeds):
        streamlines, diagnostics = IFOD2Tracker(lobe_volume, rng_seed=3).track(
            seeds, show_progress=False
        )

        assert diagnostics.n_seeds == 3
        assert diagnostics.n_streamlines_kept == len(streamlines)
        assert sum(diagnostics.termination_reasons.values()) == 3
        assert diagnostics.total_steps == sum(len(s) - 1 for s in streamlines)
        assert diagnostics.mean_trials_per_step >= 1.0
        assert "TRACTOGRAPHY STATISTICS" in diagnostics.summary()

    def test_hdf5_output(self, lobe_volume, seeds, tmp_path):
        path = tmp_path / "tracks.h5"
        streamlines, _ = IFOD2Tracker(lobe_volume, rng_seed=5).track(
            seeds, output_file=str(path), show_progress=False
        )

        loaded = load_hdf5(str(path))
        assert len(loaded) == len(streamlines)
        np.testing.assert_allclose(loaded[0], streamlines[0], rtol=1e-5)

    def test_tck_output(self, lobe_volume, seeds, tmp_path):
        path = tmp_path / "tracks.tck"
        IFOD2Tracker(lobe_volume, rng_seed=5).track(seeds, output_file=str(path), show_progress=False)
        assert path.exists()

    def test_decision_log(self, lobe_volume, seeds, tmp_path):
        log_path = tmp_path / "decisions.md"
        IFOD2Tracker(lobe_volume, rng_seed=5).track(
            seeds, decision_log=str(log_path), show_progress=False
        )

        content = log_path.read_text()
        assert "ifod2_tracking" in content
        assert "rng_seed" in content


class TestTrackingDiagnostics:
    """Test accumulation of per-streamline reports"""

    def test_add(self):
        diagnostics = TrackingDiagnostics()
        diagnostics.add(StreamlineDiagnostics(True, 'low_envelope', 1, 30, 10, 0), kept=True)
        diagnostics.add(StreamlineDiagnostics(False, 'seeding_failed', 100, 0, 0, 0), kept=False)

        assert diagnostics.n_seeds == 2
        assert diagnostics.n_seeding_failures == 1
        assert diagnostics.n_streamlines_kept == 1
        assert diagnostics.mean_trials_per_step == pytest.approx(3.0)
        assert diagnostics.termination_reasons == {'low_envelope': 1, 'seeding_failed': 1}
        assert diagnostics.to_dict()['mean_trials_per_step'] == pytest.approx(3.0)

    def test_empty(self):
        assert TrackingDiagnostics().mean_trials_per_step == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
