#!/usr/bin/env python3
"""
Workshop walkthrough: observations -> GLM and GAM -> seasonal maps.
"""

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from marine_sdm.config import COUNTRIES, REGIONS  # noqa: E402
from marine_sdm.data import load_observations, load_prediction_grids, summarize_observations  # noqa: E402
from marine_sdm.geodata import fetch_bathymetry, fetch_coastlines  # noqa: E402
from marine_sdm.mapping import plot_observations, plot_seasonal_maps, plot_smooth_terms  # noqa: E402
from marine_sdm.model import PresenceModel, backward_select, compare_models  # noqa: E402
from marine_sdm.predict import predict_seasons  # noqa: E402

# Configuration
DATA_DIR = Path("data")
OBSERVATIONS = DATA_DIR / "observations.csv"
OUTPUT_DIR = Path("output")
CACHE_DIR = DATA_DIR / "cache"
REGION = "inner_danish_waters"
# Smaller basis for the noisy chlorophyll and catch covariates
GAM_N_SPLINES = {"sandeel": 4, "chl_week_lag": 4}


def main():
    logger.info("=" * 60)
    logger.info("Seasonal distribution workshop")
    logger.info("=" * 60)

    # Step 1: Load data
    logger.info("[1/5] Loading observations and prediction grids...")
    observations = load_observations(OBSERVATIONS)
    stats = summarize_observations(observations)
    logger.info(f"  {stats['n_records']} records, prevalence {stats['prevalence']:.3f}")
    grids = load_prediction_grids(DATA_DIR)

    # Step 2: Exploratory map
    logger.info("[2/5] Mapping sampling locations...")
    bbox = REGIONS[REGION]["bbox"]
    coastlines = fetch_coastlines(COUNTRIES, cache_dir=CACHE_DIR)
    bathymetry = fetch_bathymetry(bbox, cache_path=CACHE_DIR / f"bathymetry_{REGION}.tif")
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    ax = plot_observations(observations, coastlines=coastlines, bathymetry=bathymetry)
    ax.figure.savefig(OUTPUT_DIR / "observations.png", dpi=150, bbox_inches="tight")

    # Step 3: GLM with backward selection
    logger.info("[3/5] Fitting GLM...")
    glm, glm_history = backward_select(observations, family="glm")
    logger.info(f"  Selected GLM: {glm.formula}")
    logger.info("\n" + glm.summary().to_string())

    # Step 4: GAM, then compare
    logger.info("[4/5] Fitting GAM...")
    n_splines = {c: k for c, k in GAM_N_SPLINES.items() if c in glm.covariates}
    gam = PresenceModel(family="gam", covariates=glm.covariates, n_splines=n_splines)
    gam.fit(observations)
    logger.info("\n" + gam.summary().to_string())
    plot_smooth_terms(gam, output_path=OUTPUT_DIR / "gam_smooths.png")

    comparison = compare_models({"glm": glm, "gam": gam})
    logger.info("\n" + comparison.drop(columns=["formula"]).to_string(index=False))

    # Step 5: Seasonal maps for both models
    logger.info("[5/5] Predicting and mapping seasons...")
    for name, model in (("glm", glm), ("gam", gam)):
        predictions = predict_seasons(model, grids)
        plot_seasonal_maps(
            predictions,
            coastlines=coastlines,
            bathymetry=bathymetry,
            title=f"Predicted probability of presence ({name.upper()})",
            output_path=OUTPUT_DIR / f"{name}_seasonal_maps.png",
        )

    logger.info("=" * 60)
    logger.info(f"Preferred model: {comparison.loc[0, 'model']} (AIC {comparison.loc[0, 'aic']:.2f})")
    logger.info(f"Outputs saved to {OUTPUT_DIR}/")

    return comparison


if __name__ == "__main__":
    main()
