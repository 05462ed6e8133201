"""
fodtrack Command-Line Interface

Runs second-order probabilistic tractography and deformation field
correction.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .utils.logger import get_logger


def parse_vector(text: str):
    """Parse 'x,y,z' into three floats"""
    try:
        values = [float(v) for v in text.split(',')]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid vector '{text}': {e}")
    if len(values) != 3:
        raise argparse.ArgumentTypeError(f"expected 3 comma separated values, got '{text}'")
    return tuple(values)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fodtrack',
        description="fodtrack: second-order probabilistic tractography over FOD fields",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Track from every voxel of a seed mask
  fodtrack track --fod wm_fod.nii.gz --seed-mask seeds.nii.gz --output tracks.tck

  # Same, with parameters from a JSON file and a fixed RNG seed
  fodtrack track --fod wm_fod.nii.gz --seed-mask seeds.nii.gz --config ifod2.json \\
      --rng-seed 42 --output tracks.h5

  # Mark (0,0,0) voxels of a deformation field as out of bounds
  fodtrack warpcorrect warp.nii.gz warp_corrected.nii.gz --marker 0
        """
    )

    parser.add_argument('--version', action='version', version='fodtrack 0.1.0')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug mode')
    parser.add_argument('--log-dir', help='Also write a detailed log file to this directory')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Tracking command
    track_parser = subparsers.add_parser('track', help='Second-order probabilistic tractography')
    track_parser.add_argument('--fod', required=True, help='FOD SH coefficient image (4D NIfTI)')
    track_parser.add_argument('--seed-mask', required=True, help='Seed mask (NIfTI)')
    track_parser.add_argument('--output', '-o', required=True,
                              help='Output streamlines (.tck, .trk, .h5)')
    track_parser.add_argument('--config', help='Tracking parameters (JSON)')
    track_parser.add_argument('--step-size', type=float,
                              help='Step size in mm (default: half the voxel size)')
    track_parser.add_argument('--angle', type=float,
                              help='Max angle per step in degrees (default: 90 x step / voxel size)')
    track_parser.add_argument('--samples', type=int, help='Samples per step (default: 4)')
    track_parser.add_argument('--max-trials', type=int, help='Max rejection trials (default: 100)')
    track_parser.add_argument('--cutoff', type=float, help='FOD amplitude threshold (default: 0.1)')
    track_parser.add_argument('--init-cutoff', type=float,
                              help='FOD amplitude threshold at the seed (default: cutoff)')
    track_parser.add_argument('--init-direction', type=parse_vector,
                              help='Fixed initial direction x,y,z')
    track_parser.add_argument('--no-precomputed', action='store_true',
                              help='Evaluate SH amplitudes directly instead of from a table')
    track_parser.add_argument('--seeds-per-voxel', type=int, default=1,
                              help='Seeds per voxel (default: 1)')
    track_parser.add_argument('--max-steps', type=int, default=2000,
                              help='Max steps per streamline (default: 2000)')
    track_parser.add_argument('--rng-seed', type=int, help='Random number generator seed')
    track_parser.add_argument('--decision-log', help='Append a run record to this markdown file')

    # Warp correction command
    warp_parser = subparsers.add_parser(
        'warpcorrect',
        help='Replace out-of-bounds marker voxels in a deformation field with nan'
    )
    warp_parser.add_argument('input', help='Input deformation field (4D NIfTI, 3 volumes)')
    warp_parser.add_argument('output', help='Output deformation field')
    warp_parser.add_argument('--marker', default='0',
                             help='Out-of-bounds value: one value or x,y,z (default: 0,0,0)')
    warp_parser.add_argument('--tolerance', type=float,
                             help='L2 distance tolerance for matching the marker')

    return parser


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    log_level = logging.DEBUG if args.debug else (logging.INFO if args.verbose else logging.WARNING)
    logger = get_logger(log_dir=args.log_dir)
    logger.setLevel(log_level)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'track':
            run_tracking(args)
        elif args.command == 'warpcorrect':
            run_warpcorrect(args)
        else:
            parser.print_help()
            sys.exit(1)

        logger.info("Command completed successfully")

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.debug)
        sys.exit(1)


def tracking_config_from_args(args, voxel_size):
    """Merge JSON config and command-line overrides into a TrackingConfig"""
    from .tractography.config import TrackingConfig

    params = {}
    if args.config:
        with open(args.config, 'r', encoding='utf-8') as f:
            params.update(json.load(f))

    overrides = {
        'step_size': args.step_size,
        'max_angle': args.angle,
        'num_samples': args.samples,
        'max_trials': args.max_trials,
        'threshold': args.cutoff,
        'init_threshold': args.init_cutoff,
        'init_direction': args.init_direction,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    if args.no_precomputed:
        params['precomputed'] = False

    return TrackingConfig.for_voxel_size(voxel_size, **params)


def run_tracking(args):
    """Run tractography"""
    import nibabel as nib
    import numpy as np
    from .tractography.field import SHField
    from .tractography.seeding import seeds_from_mask
    from .tractography.tracker import IFOD2Tracker

    logger = get_logger()
    logger.info("=" * 80)
    logger.info("SECOND-ORDER PROBABILISTIC TRACTOGRAPHY")
    logger.info("=" * 80)

    output_path = Path(args.output)

    field = SHField.from_nifti(args.fod)
    config = tracking_config_from_args(args, field.voxel_size)

    logger.info(f"Loading seed mask from {args.seed_mask}")
    mask_img = nib.load(args.seed_mask)
    seed_rng = np.random.default_rng(args.rng_seed)
    seeds = seeds_from_mask(
        mask_img.get_fdata() > 0,
        affine=mask_img.affine,
        seeds_per_voxel=args.seeds_per_voxel,
        rng=seed_rng,
        jitter=True
    )

    tracker = IFOD2Tracker(
        field,
        config=config,
        rng_seed=args.rng_seed,
        max_num_steps=args.max_steps
    )

    streamlines, diagnostics = tracker.track(
        seeds,
        output_file=str(output_path),
        decision_log=args.decision_log,
        show_progress=args.verbose or args.debug
    )

    logger.info(diagnostics.summary())

    stats_path = output_path.parent / f"{output_path.stem}_statistics.json"
    with open(stats_path, 'w') as f:
        json.dump(
            {
                'tracking_parameters': tracker.get_parameters(),
                'tracking_statistics': diagnostics.to_dict()
            },
            f,
            indent=2
        )
    logger.info(f"Saved statistics to {stats_path}")

    logger.info("=" * 80)
    logger.info("TRACTOGRAPHY COMPLETED")
    logger.info("=" * 80)


def run_warpcorrect(args):
    """Correct out-of-bounds voxels of a deformation field"""
    from .preprocessing.warp_correction import PRECISION, correct_warp_file

    tolerance = PRECISION if args.tolerance is None else args.tolerance
    correct_warp_file(args.input, args.output, marker=args.marker, tolerance=tolerance)


if __name__ == "__main__":
    main()
