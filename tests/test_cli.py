"""
Unit tests for the command-line interface
"""

import json

import nibabel as nib
import numpy as np
import pytest

from fodtrack.cli import build_parser, main, tracking_config_from_args
from fodtrack.io.streamlines import load_hdf5

from conftest import Y20_SCALE, zonal_coefficients


@pytest.fixture
def fod_files(tmp_path):
    affine = np.diag([2.0, 2.0, 2.0, 1.0])
    data = np.zeros((8, 8, 8, 6), dtype=np.float32)
    data[...] = zonal_coefficients(c20=0.5 / Y20_SCALE)
    mask = np.zeros((8, 8, 8), dtype=np.uint8)
    mask[3:5, 3:5, 3] = 1

    fod_path = tmp_path / "fod.nii.gz"
    mask_path = tmp_path / "mask.nii.gz"
    nib.save(nib.Nifti1Image(data, affine), str(fod_path))
    nib.save(nib.Nifti1Image(mask, affine), str(mask_path))
    return fod_path, mask_path


class TestArguments:
    """Test argument parsing and config assembly"""

    def test_config_defaults_from_voxel_size(self):
        args = build_parser().parse_args(
            ['track', '--fod', 'f.nii', '--seed-mask', 'm.nii', '-o', 't.tck']
        )
        config = tracking_config_from_args(args, np.array([2.0, 2.0, 2.0]))

        assert config.step_size == pytest.approx(1.0)
        assert config.max_angle == pytest.approx(45.0)
        assert config.precomputed

    def test_overrides_win_over_config_file(self, tmp_path):
        config_path = tmp_path / "ifod2.json"
        config_path.write_text(json.dumps({'step_size': 0.3, 'num_samples': 2}))

        args = build_parser().parse_args([
            'track', '--fod', 'f.nii', '--seed-mask', 'm.nii', '-o', 't.tck',
            '--config', str(config_path), '--samples', '3',
            '--init-direction', '0,0,1', '--no-precomputed'
        ])
        config = tracking_config_from_args(args, np.array([1.0, 1.0, 1.0]))

        assert config.step_size == pytest.approx(0.3)
        assert config.num_samples == 3
        assert config.init_direction == (0.0, 0.0, 1.0)
        assert not config.precomputed

    def test_invalid_vector(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                'track', '--fod', 'f.nii', '--seed-mask', 'm.nii', '-o', 't.tck',
                '--init-direction', '0,1'
            ])


class TestCommands:
    """Test complete command runs"""

    def test_track(self, fod_files, tmp_path):
        fod_path, mask_path = fod_files
        output = tmp_path / "out" / "tracks.h5"

        main([
            'track', '--fod', str(fod_path), '--seed-mask', str(mask_path),
            '-o', str(output), '--rng-seed', '7', '--max-steps', '50'
        ])

        streamlines = load_hdf5(str(output))
        assert len(streamlines) > 0
        assert all(len(s) <= 51 for s in streamlines)

        stats = json.loads((tmp_path / "out" / "tracks_statistics.json").read_text())
        assert stats['tracking_statistics']['n_seeds'] == 4
        assert stats['tracking_parameters']['rng_seed'] == 7

    def test_track_missing_input(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main([
                'track', '--fod', str(tmp_path / "missing.nii.gz"),
                '--seed-mask', str(tmp_path / "missing_mask.nii.gz"),
                '-o', str(tmp_path / "tracks.tck")
            ])
        assert excinfo.value.code == 1

    def test_warpcorrect(self, tmp_path):
        warp = np.ones((4, 4, 4, 3), dtype=np.float32)
        warp[1, 2, 3] = 0.0
        input_path = tmp_path / "warp.nii.gz"
        output_path = tmp_path / "warp_corrected.nii.gz"
        nib.save(nib.Nifti1Image(warp, np.eye(4)), str(input_path))

        main(['warpcorrect', str(input_path), str(output_path), '--marker', '0,0,0'])

        corrected = nib.load(str(output_path)).get_fdata()
        assert np.isnan(corrected[1, 2, 3]).all()
        assert np.count_nonzero(np.isnan(corrected[..., 0])) == 1

    def test_no_command(self):
        with pytest.raises(SystemExit):
            main([])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
