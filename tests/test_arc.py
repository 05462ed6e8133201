"""
Unit tests for constant-curvature arc generation
"""

import numpy as np
import pytest

from fodtrack.tractography.arc import ArcSample, generate_arc, iter_arc_samples


def unit(v):
    v = np.asarray(v, dtype=np.float64)
    return v / np.linalg.norm(v)


class TestStraightArc:
    """Test arcs with no turn"""

    def test_colinear_and_evenly_spaced(self):
        position = np.array([1.0, 2.0, 3.0])
        direction = unit([1.0, 1.0, 0.0])

        positions, tangents = generate_arc(position, direction, direction, 4, 0.5)

        assert positions.shape == (4, 3)
        distances = np.linalg.norm(positions - position, axis=1)
        np.testing.assert_allclose(distances, [0.125, 0.25, 0.375, 0.5])
        np.testing.assert_allclose(tangents, np.tile(direction, (4, 1)))

    def test_antiparallel_is_straight(self):
        position = np.zeros(3)
        direction = np.array([0.0, 0.0, 1.0])

        positions, tangents = generate_arc(position, direction, -direction, 3, 0.3)

        np.testing.assert_allclose(positions[:, :2], 0.0, atol=1e-12)
        np.testing.assert_allclose(positions[-1], [0.0, 0.0, 0.3])
        assert np.all(np.isfinite(tangents))


class TestCurvedArc:
    """Test arcs turning between two directions"""

    @pytest.fixture
    def arc(self):
        position = np.array([0.5, -0.5, 0.0])
        direction = np.array([0.0, 0.0, 1.0])
        end_direction = unit([np.sin(np.deg2rad(40.0)), 0.0, np.cos(np.deg2rad(40.0))])
        positions, tangents = generate_arc(position, direction, end_direction, 4, 1.0)
        return position, direction, end_direction, positions, tangents

    def test_ends_along_end_direction(self, arc):
        _, _, end_direction, _, tangents = arc
        np.testing.assert_allclose(tangents[-1], end_direction)

    def test_unit_tangents(self, arc):
        tangents = arc[4]
        np.testing.assert_allclose(np.linalg.norm(tangents, axis=1), 1.0)

    def test_tangents_turn_uniformly(self, arc):
        _, direction, _, _, tangents = arc
        angles = np.arccos(np.clip(tangents @ direction, -1.0, 1.0))
        expected = np.deg2rad(40.0) * np.arange(1, 5) / 4
        np.testing.assert_allclose(angles, expected, atol=1e-9)

    def test_equal_chords(self, arc):
        position, _, _, positions, _ = arc
        points = np.vstack([position, positions])
        chords = np.linalg.norm(np.diff(points, axis=0), axis=1)
        np.testing.assert_allclose(chords, chords[0])

        # Chord of an arc of length 1/4 on a circle of radius 1/theta
        theta = np.deg2rad(40.0)
        radius = 1.0 / theta
        assert chords[0] == pytest.approx(2 * radius * np.sin(theta / 8))

    def test_stays_in_turning_plane(self, arc):
        positions = arc[3]
        np.testing.assert_allclose(positions[:, 1], -0.5, atol=1e-12)

    def test_non_unit_end_direction(self):
        direction = np.array([1.0, 0.0, 0.0])
        end_direction = np.array([2.0, 2.0, 0.0])

        _, tangents = generate_arc(np.zeros(3), direction, end_direction, 2, 0.5)
        np.testing.assert_allclose(tangents[-1], unit(end_direction))


class TestArcSamples:
    """Test the per-sample view"""

    def test_iteration(self):
        direction = np.array([0.0, 1.0, 0.0])
        positions, tangents = generate_arc(np.zeros(3), direction, direction, 3, 0.3)

        samples = list(iter_arc_samples(positions, tangents))

        assert len(samples) == 3
        assert isinstance(samples[0], ArcSample)
        np.testing.assert_allclose(samples[-1].position, [0.0, 0.3, 0.0])
        np.testing.assert_allclose(samples[-1].direction, direction)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
