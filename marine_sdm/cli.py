"""
Command-line interface for the seasonal distribution workflow.
"""

import argparse
import json
import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

from .config import (  # noqa: E402
    AIC_IMPROVEMENT,
    BATHYMETRY_RESOLUTION,
    COUNTRIES,
    DEFAULT_CRS,
    DEFAULT_N_SPLINES,
    DEFAULT_REGION,
    REGIONS,
    SIGNIFICANCE_LEVEL,
)
from .data import load_observations, summarize_observations  # noqa: E402
from .errors import SDMError  # noqa: E402
from .geodata import fetch_bathymetry, fetch_coastlines  # noqa: E402
from .mapping import plot_observations, plot_seasonal_maps, plot_smooth_terms  # noqa: E402
from .model import PresenceModel, backward_select, compare_models  # noqa: E402
from .pipeline import run_seasonal_projection  # noqa: E402
from .schema import COVARIATES  # noqa: E402

logger = logging.getLogger(__name__)


def parse_n_splines(values: list[str] | None):
    """
    Parse ``--k`` values: a single integer, or ``covariate=k`` pairs.
    """
    if not values:
        return None
    if len(values) == 1 and "=" not in values[0]:
        return _parse_k(values[0], values[0])

    n_splines = {}
    for value in values:
        covariate, _, k = value.partition("=")
        if not k:
            raise argparse.ArgumentTypeError(f"Expected covariate=k, got {value!r}")
        n_splines[covariate] = _parse_k(k, value)
    return n_splines


def _parse_k(k: str, value: str) -> int:
    try:
        return int(k)
    except ValueError:
        raise argparse.ArgumentTypeError(f"--k expects an integer basis size, got {value!r}") from None


def load_context(args):
    """Fetch coastlines and bathymetry, or (None, None) with --no-context."""
    if args.no_context:
        return None, None

    bbox = REGIONS[args.region]["bbox"]
    cache_dir = Path(args.cache_dir)
    coastlines = fetch_coastlines(args.countries, cache_dir=cache_dir)
    bathymetry = fetch_bathymetry(
        bbox, resolution=args.bathy_resolution, cache_path=cache_dir / f"bathymetry_{args.region}.tif"
    )
    return coastlines, bathymetry


def cmd_explore(args) -> None:
    observations = load_observations(args.observations, crs=args.crs)
    print(json.dumps(summarize_observations(observations), indent=2))

    coastlines, bathymetry = load_context(args)
    ax = plot_observations(observations, coastlines=coastlines, bathymetry=bathymetry, crs=args.crs)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / "observations.png"
    ax.figure.savefig(path, dpi=150, bbox_inches="tight")
    print(f"Saved observation map to {path}")


def cmd_fit(args) -> None:
    observations = load_observations(args.observations, crs=args.crs)
    model = PresenceModel(family=args.family, covariates=args.covariates, n_splines=args.k)
    stats = model.fit(observations)

    print(f"\n{model.formula}")
    print(model.summary().to_string(float_format=lambda v: f"{v:.4g}"))
    print(f"\nAIC: {stats['aic']:.2f}  AUC: {stats['auc']:.3f}  deviance explained: {stats['explained_deviance']:.1%}")

    insignificant = model.insignificant_terms(args.alpha)
    if insignificant:
        print(f"Removal candidates (p > {args.alpha}): {', '.join(insignificant)}")

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    model_path = output_dir / f"{args.family}_model.joblib"
    model.save(model_path)
    print(f"Saved model to {model_path}")

    if args.family == "gam":
        plot_smooth_terms(model, output_path=output_dir / "gam_smooths.png")


def cmd_compare(args) -> None:
    observations = load_observations(args.observations, crs=args.crs)
    n_splines = args.k

    models = {}
    for family in ("glm", "gam"):
        print(f"\nBackward selection ({family})...")
        selected, history = backward_select(
            observations,
            covariates=args.covariates,
            family=family,
            alpha=args.alpha,
            aic_delta=args.aic_delta,
            **({"n_splines": n_splines} if family == "gam" and n_splines else {}),
        )
        print(history.to_string(index=False))
        models[f"{family}_selected"] = selected

    table = compare_models(models, aic_delta=args.aic_delta)
    print("\nModel comparison:")
    print(table.drop(columns=["formula"]).to_string(index=False))
    print(f"\nPreferred model: {table.loc[0, 'model']} ({table.loc[0, 'formula']})")


def cmd_project(args) -> None:
    result = run_seasonal_projection(
        args.observations,
        args.grid_dir,
        family=args.family,
        covariates=args.covariates,
        n_splines=args.k,
        output_dir=Path(args.output_dir),
        crs=args.crs,
    )
    print(result.summary().to_string())

    coastlines, bathymetry = load_context(args)
    plot_seasonal_maps(
        result.grids,
        coastlines=coastlines,
        bathymetry=bathymetry,
        crs=args.crs,
        title=f"Predicted probability of presence ({args.family.upper()})",
        output_path=Path(args.output_dir) / f"{args.family}_seasonal_maps.png",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Seasonal presence/absence distribution modelling")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("observations", help="Observation table (CSV)")
    common.add_argument("--output-dir", "-o", default="./output", help="Output directory")
    common.add_argument("--crs", default=DEFAULT_CRS, help="Projected CRS of x/y")
    common.add_argument("--covariates", nargs="+", default=COVARIATES, help="Model covariates")
    common.add_argument("--k", nargs="+", metavar="K",
                        help=f"GAM basis size: one integer or covariate=k pairs (default {DEFAULT_N_SPLINES})")
    common.add_argument("--alpha", type=float, default=SIGNIFICANCE_LEVEL, help="Significance threshold")
    common.add_argument("--aic-delta", type=float, default=AIC_IMPROVEMENT,
                        help="AIC difference treated as a real improvement")

    context = argparse.ArgumentParser(add_help=False)
    context.add_argument("--region", default=DEFAULT_REGION, choices=list(REGIONS), help="Map region")
    context.add_argument("--countries", nargs="+", default=list(COUNTRIES), help="ISO3 codes for coastlines")
    context.add_argument("--bathy-resolution", type=float, default=BATHYMETRY_RESOLUTION,
                         help="Bathymetry resolution in arc-minutes")
    context.add_argument("--cache-dir", default="./data/cache", help="Cache for downloaded layers")
    context.add_argument("--no-context", action="store_true", help="Skip coastline and bathymetry layers")

    p = sub.add_parser("explore", parents=[common, context], help="Map sampling locations")
    p.set_defaults(func=cmd_explore)

    p = sub.add_parser("fit", parents=[common], help="Fit one model and print its summary")
    p.add_argument("--family", "-m", default="glm", choices=list(PresenceModel.FAMILIES), help="Model family")
    p.set_defaults(func=cmd_fit)

    p = sub.add_parser("compare", parents=[common], help="Backward selection and AIC comparison of GLM and GAM")
    p.set_defaults(func=cmd_compare)

    p = sub.add_parser("project", parents=[common, context], help="Predict and map the seasonal grids")
    p.add_argument("grid_dir", help="Directory with grid_<season>.csv files")
    p.add_argument("--family", "-m", default="glm", choices=list(PresenceModel.FAMILIES), help="Model family")
    p.set_defaults(func=cmd_project)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        args.k = parse_n_splines(args.k)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        args.func(args)
    except SDMError as exc:
        logger.error(str(exc))
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
