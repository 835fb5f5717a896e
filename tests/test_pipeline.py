"""
End-to-end tests for the seasonal projection workflow and the CLI.
"""

import argparse
import json

import matplotlib.pyplot as plt
import pandas as pd
import pytest

from marine_sdm.cli import build_parser, main, parse_n_splines
from marine_sdm.model import PresenceModel
from marine_sdm.pipeline import run_seasonal_projection
from marine_sdm.schema import SEASONS

MODEL_COVARIATES = ["depth", "sst_day", "sandeel"]


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_run_seasonal_projection_glm(data_dir, tmp_path):
    """Test the load -> fit -> predict -> save chain."""
    output_dir = tmp_path / "results"

    result = run_seasonal_projection(
        data_dir / "observations.csv",
        data_dir,
        family="glm",
        covariates=MODEL_COVARIATES,
        output_dir=output_dir,
    )

    assert list(result.grids) == list(SEASONS)
    for season in SEASONS:
        assert result.grids[season]["probability"].between(0.0, 1.0).all()
        saved = pd.read_csv(output_dir / f"glm_{season}.csv")
        assert len(saved) == len(result.grids[season])
        assert (output_dir / f"glm_{season}.tif").exists()

    with open(output_dir / "glm_coefficients.json") as f:
        coefficients = json.load(f)
    assert set(coefficients["terms"]) == {"Intercept"} | set(MODEL_COVARIATES)
    assert coefficients["fit"]["n_obs"] == result.fit_stats["n_obs"]

    loaded = PresenceModel.load(output_dir / "glm_model.joblib")
    assert loaded.covariates == MODEL_COVARIATES
    assert result.observation_stats["n_records"] == 400


def test_run_seasonal_projection_gam_without_saving(data_dir):
    """Test a GAM projection with per-covariate basis sizes."""
    result = run_seasonal_projection(
        data_dir / "observations.csv",
        data_dir,
        family="gam",
        covariates=MODEL_COVARIATES,
        n_splines={"sandeel": 4},
    )

    assert result.model.n_splines == {"depth": 10, "sst_day": 10, "sandeel": 4}
    summary = result.summary()
    assert list(summary.index) == list(SEASONS)
    assert (summary["n_missing"] == 0).all()


def test_run_seasonal_projection_grids_with_model_covariates_only(data_dir, seasonal_grids):
    """Test that grids only need x, y and the covariates the model uses."""
    for season, grid in seasonal_grids.items():
        grid[["x", "y", "depth", "sst_day"]].to_csv(data_dir / f"grid_{season}.csv", index=False)

    result = run_seasonal_projection(
        data_dir / "observations.csv",
        data_dir,
        covariates=["depth", "sst_day"],
    )

    for grid in result.grids.values():
        assert grid["probability"].notna().all()


def test_parse_n_splines():
    assert parse_n_splines(None) is None
    assert parse_n_splines(["6"]) == 6
    assert parse_n_splines(["depth=5", "sandeel=4"]) == {"depth": 5, "sandeel": 4}

    with pytest.raises(argparse.ArgumentTypeError):
        parse_n_splines(["depth=x"])
    with pytest.raises(argparse.ArgumentTypeError):
        parse_n_splines(["ten"])


def test_parser_defaults():
    args = build_parser().parse_args(["fit", "obs.csv"])

    assert args.family == "glm"
    assert args.alpha == 0.05
    assert args.aic_delta == 2.0


def test_cli_fit(data_dir, tmp_path, capsys):
    """Test the fit command prints a summary and saves the model."""
    output_dir = tmp_path / "cli"

    main(["fit", str(data_dir / "observations.csv"), "--covariates", "depth", "sst_day",
          "-o", str(output_dir)])

    out = capsys.readouterr().out
    assert "presence ~ depth + sst_day" in out
    assert "AIC" in out
    assert (output_dir / "glm_model.joblib").exists()


def test_cli_project_without_context(data_dir, tmp_path):
    """Test the project command renders maps without network layers."""
    output_dir = tmp_path / "cli"

    main(["project", str(data_dir / "observations.csv"), str(data_dir), "--covariates", "depth", "sst_day",
          "--no-context", "-o", str(output_dir)])

    assert (output_dir / "glm_seasonal_maps.png").exists()
    assert (output_dir / "glm_winter.csv").exists()


def test_cli_reports_pipeline_errors(tmp_path, observations):
    """Test that data errors exit with status 1."""
    observations.drop(columns=["depth"]).to_csv(tmp_path / "obs.csv", index=False)

    with pytest.raises(SystemExit) as excinfo:
        main(["fit", str(tmp_path / "obs.csv")])

    assert excinfo.value.code == 1


def test_cli_rejects_bad_basis_size(capsys):
    """Test that a non-integer --k is an argument error, not a traceback."""
    with pytest.raises(SystemExit) as excinfo:
        main(["fit", "obs.csv", "--family", "gam", "--k", "depth=x"])

    assert excinfo.value.code == 2
    assert "integer basis size" in capsys.readouterr().err
