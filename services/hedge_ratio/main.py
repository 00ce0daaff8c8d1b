"""Command-line entry point: replay a price history through a hedge ratio filter."""

import argparse
import sys
from typing import Dict, List, Optional

from common.logger import configure_logging, get_logger
from .config import settings
from .filter import HedgeRatioFilter, HedgeRatioFilterError
from .replay import load_price_csv, replay_prices
from .state import StateManager

logger = get_logger(__name__)

SERVICE_NAME = "hedge-ratio"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Run a Kalman hedge ratio filter over two aligned price series'
    )

    parser.add_argument('prices', help='CSV file holding both price series')
    parser.add_argument('--column-a', required=True, help='Column with the first instrument price')
    parser.add_argument('--column-b', required=True, help='Column with the second instrument price')
    parser.add_argument('--timestamp-column', help='Column used to order rows')

    # Filter parameters; unset values fall back to settings, or to the saved state when resuming
    parser.add_argument('--delta', type=float,
                        help=f'Process noise scale (default: {settings.delta})')
    parser.add_argument('--observation-noise-variance', type=float,
                        help=f'Observation noise variance (default: {settings.observation_noise_variance})')
    parser.add_argument('--quantity-scale', type=float,
                        help=f'Hedge quantity multiplier (default: {settings.quantity_scale})')

    # Output and persistence
    parser.add_argument('--output', help='Write per-bar outputs to this CSV file')
    parser.add_argument('--pair-id', help='Identifier for loading/saving filter state')
    parser.add_argument('--state-dir', default=settings.state_dir,
                        help=f'State directory (default: {settings.state_dir})')

    # Logging
    parser.add_argument('--log-level', default=settings.log_level,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help=f'Log level (default: {settings.log_level})')
    parser.add_argument('--log-format', default=settings.log_format, choices=['json', 'console'],
                        help=f'Log format (default: {settings.log_format})')

    return parser


def requested_filter_kwargs(args: argparse.Namespace) -> Dict[str, float]:
    """Settings defaults overlaid with the filter parameters given on the command line."""
    kwargs = settings.filter_kwargs()
    for name in kwargs:
        value = getattr(args, name)
        if value is not None:
            kwargs[name] = value
    return kwargs


def resume_filter(state_manager: StateManager, pair_id: str,
                  requested: Dict[str, float]) -> Optional[HedgeRatioFilter]:
    """
    Rebuild the saved filter for pair_id with the parameters it was saved with.

    Returns None when there is nothing saved. A state file that exists but
    cannot be restored raises, so it is never replaced by a fresh filter.
    """
    if not state_manager.has_state(pair_id):
        logger.info("No saved state, starting from a fresh filter", pair_id=pair_id)
        return None

    filter_obj = state_manager.load_state(pair_id)
    if filter_obj is None:
        raise HedgeRatioFilterError(f"Saved state for {pair_id} could not be restored")

    if filter_obj.params != requested:
        logger.warning(
            "Resuming with saved filter parameters",
            pair_id=pair_id,
            saved=filter_obj.params,
            requested=requested
        )
    return filter_obj


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    configure_logging(SERVICE_NAME, log_level=args.log_level, log_format=args.log_format)

    try:
        prices = load_price_csv(args.prices, args.column_a, args.column_b, args.timestamp_column)

        requested = requested_filter_kwargs(args)

        filter_obj = None
        state_manager = None
        if args.pair_id:
            state_manager = StateManager(args.state_dir, settings.backup_retention_days)
            filter_obj = resume_filter(state_manager, args.pair_id, requested)
        if filter_obj is None:
            filter_obj = HedgeRatioFilter(**requested)

        outputs = replay_prices(filter_obj, prices['price_a'], prices['price_b'], index=prices.index)

        if args.output:
            outputs.to_csv(args.output)
            logger.info("Outputs written", file=args.output, rows=len(outputs))

        if state_manager is not None:
            if not state_manager.save_state(filter_obj, args.pair_id):
                return 1
            state_manager.cleanup_old_backups()

    except (HedgeRatioFilterError, ValueError, OSError) as e:
        logger.error("Hedge ratio replay failed", error=str(e), exc_info=True)
        return 1

    logger.info(
        "Hedge ratio replay finished",
        rows=len(outputs),
        hedge_ratio=filter_obj.hedge_ratio,
        intercept=filter_obj.intercept,
        hedge_quantity=int(outputs['hedge_quantity'].iloc[-1]) if len(outputs) else None
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
