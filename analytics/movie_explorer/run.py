#!/usr/bin/env python3
"""
CLI entry point for the Movie Explorer pipeline.

Runs the complete pipeline:
1. Connect to the database
2. Summarize and plot the movies table
3. Compute and rank correlations
4. Fit linear models locally and in the database, compare predictions
5. Export results
6. Print summary

Usage:
    python -m analytics.movie_explorer.run [--inspect-schema]

Options:
    --inspect-schema    Inspect and print the table schema before running
    --load-csv PATH     Load a movies CSV into the table first (read_write session)
    --skip-plots        Skip chart rendering
    --skip-models       Skip model fitting (only summaries and correlations)
    --skip-export       Skip writing results to the output directory
    --help              Show this help message
"""

import sys
import argparse
import logging
from typing import List, Optional

from .aggregator import count_by, group_summary, materialize
from .config import get_config
from .correlation_analyzer import correlate, log_correlation_summary, numeric_view, shave_and_rank
from .database import connect
from .dataset_loader import load_movies_csv
from .errors import MovieExplorerError, QueryError
from .models import LocalModel, RemoteModel, compare_predictions, evaluate_model, predictions_agree
from .plots import bar_chart, correlation_chart
from .results_export import save_chart, store_correlation_results, store_model_results, store_predictions
from .schema_inspector import print_schema_summary

DEFAULT_TARGET = "gross"
DEFAULT_PREDICTORS = ["budget", "votes", "runtime", "genre"]


def setup_logging(verbose: bool = True, level: str = "INFO"):
    """Set up logging configuration."""
    level = getattr(logging, str(level).upper(), logging.INFO) if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def print_banner():
    """Print ASCII banner."""
    banner = """
    ╔═══════════════════════════════════════════════════════════════════════════╗
    ║                                                                           ║
    ║                     Movie Explorer - Analysis Pipeline                    ║
    ║                                                                           ║
    ║        Summaries, correlations and linear models over a movies table      ║
    ║                                                                           ║
    ╚═══════════════════════════════════════════════════════════════════════════╝
    """
    print(banner)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Movie Explorer - analysis pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m analytics.movie_explorer.run
  python -m analytics.movie_explorer.run --inspect-schema
  python -m analytics.movie_explorer.run --target gross --predictors budget votes genre
        """
    )
    parser.add_argument("--inspect-schema", action="store_true", help="Inspect table schema before running")
    parser.add_argument("--load-csv", metavar="PATH", help="Load a movies CSV into the table before running")
    parser.add_argument("--skip-plots", action="store_true", help="Skip chart rendering")
    parser.add_argument("--skip-models", action="store_true", help="Skip model fitting")
    parser.add_argument("--skip-export", action="store_true", help="Skip writing results to disk")
    parser.add_argument("--target", default=DEFAULT_TARGET, help=f"Regression target (default: {DEFAULT_TARGET})")
    parser.add_argument(
        "--predictors",
        nargs="+",
        default=DEFAULT_PREDICTORS,
        help=f"Regression predictors (default: {' '.join(DEFAULT_PREDICTORS)})"
    )
    parser.add_argument("--quiet", action="store_true", help="Reduce logging verbosity")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the movie explorer pipeline."""
    args = build_parser().parse_args(argv)

    logger = logging.getLogger(__name__)
    session = None

    try:
        # Load configuration
        config = get_config()
        setup_logging(verbose=config.verbose and not args.quiet, level=config.log_level)
        print_banner()

        logger.info("✓ Configuration loaded")
        logger.info(f"  - Driver: {config.driver}")
        logger.info(f"  - Database: {config.database}")
        logger.info(f"  - Table: {config.table}")

        session = connect(config)

        if args.load_csv:
            logger.info("\n" + "=" * 80)
            logger.info("LOADING DATASET")
            logger.info("=" * 80)
            load_movies_csv(session, args.load_csv)

        if args.inspect_schema:
            print_schema_summary(session, config.table)

        movies = session.table()
        export = not args.skip_export

        # Step 1: Summaries and plots
        logger.info("\n" + "=" * 80)
        logger.info("STEP 1: Grouped Summaries")
        logger.info("=" * 80)

        runtime_by_rating = materialize(
            group_summary(movies, "rating", {"avg_runtime": ("runtime", "mean"), "n": ("runtime", "count")})
        )
        movies_by_genre = materialize(count_by(movies, "genre", descending=True))
        logger.info(f"✓ {len(runtime_by_rating)} ratings, {len(movies_by_genre)} genres")

        if not args.skip_plots:
            charts = {
                "runtime_by_rating": bar_chart(
                    runtime_by_rating, "rating", "avg_runtime",
                    title="Average runtime by rating",
                    axis_labels=("Rating", "Average runtime (min)")
                ),
                "movies_by_genre": bar_chart(
                    movies_by_genre, "genre", "n",
                    title="Movies per genre",
                    axis_labels=("Genre", "Movies"),
                    sort_by="value_desc"
                ),
            }
            if export:
                for name, chart in charts.items():
                    save_chart(chart, config.output_dir, name)

        # Step 2: Correlations
        logger.info("\n" + "=" * 80)
        logger.info("STEP 2: Compute Correlations")
        logger.info("=" * 80)

        numeric_rows = numeric_view(movies).materialize()
        matrix = correlate(numeric_rows)
        edges = shave_and_rank(matrix)
        log_correlation_summary(edges)

        if export:
            store_correlation_results(edges, config.output_dir)
            if not args.skip_plots:
                save_chart(correlation_chart(edges), config.output_dir, "correlations")

        # Step 3: Models
        comparison = None
        model_metrics = {}
        if not args.skip_models:
            logger.info("\n" + "=" * 80)
            logger.info(f"STEP 3: Fit Models ({args.target} ~ {' + '.join(args.predictors)})")
            logger.info("=" * 80)

            columns = list(dict.fromkeys(list(config.id_columns) + [args.target] + args.predictors))
            sample = movies.select(*columns).materialize()

            local_model = LocalModel.fit(sample, args.target, args.predictors)
            remote_model = RemoteModel.fit(movies, args.target, args.predictors)

            logger.info("\n   Local model:")
            model_metrics["local"] = evaluate_model(local_model, sample)
            logger.info("\n   In-database model:")
            model_metrics["remote"] = evaluate_model(remote_model, sample)

            if export:
                store_model_results({"local": local_model, "remote": remote_model}, config.output_dir, model_metrics)

            try:
                comparison = compare_predictions(movies, local_model, remote_model, id_col=config.id_columns)
            except QueryError as e:
                logger.warning(f"   ⚠️  Skipping prediction comparison: {e}")
            else:
                if predictions_agree(comparison):
                    logger.info("   ✓ Local and in-database predictions agree")
                else:
                    logger.warning("   ⚠️  Local and in-database predictions diverge beyond tolerance")

                if export:
                    store_predictions(comparison, config.output_dir)
        else:
            logger.info("\n⊘ Skipping model fitting (--skip-models flag)")

        # Step 4: Summary
        print("\n📊 RESULTS SUMMARY")
        print("=" * 80)
        print(f"Ratings summarized: {len(runtime_by_rating)}")
        print(f"Genres counted: {len(movies_by_genre)}")
        print(f"Correlated pairs: {len(edges)}")

        if edges:
            print("\n🔝 TOP 5 CORRELATIONS:")
            for e in edges[:5]:
                print(f"    • {e.x + ' ~ ' + e.y:40} r={e.coefficient:+.4f} (n={e.n_samples})")

        if model_metrics:
            print("\n🤖 MODEL PERFORMANCE:")
            for name, metrics in model_metrics.items():
                print(f"    {name}:")
                for metric, value in metrics.items():
                    print(f"      - {metric}: {value:.4f}" if isinstance(value, float) else f"      - {metric}: {value}")

        if comparison is not None:
            print(f"\nPredictions compared: {len(comparison)}")

        print("\n" + "=" * 80)
        print("✅ PIPELINE COMPLETED SUCCESSFULLY")
        print("=" * 80)

        return 0

    except KeyboardInterrupt:
        logger.warning("\n\n⚠️  Pipeline interrupted by user")
        return 130

    except MovieExplorerError as e:
        logger.error(f"\n\n❌ PIPELINE FAILED: {type(e).__name__}: {e}")
        return 1

    except Exception as e:
        logger.error(f"\n\n❌ PIPELINE FAILED with error: {e}", exc_info=True)
        return 1

    finally:
        # Clean up
        if session is not None:
            session.close()
        logger.info("✓ Cleanup complete")


if __name__ == "__main__":
    sys.exit(main())
