"""
Presence/absence model fitting and comparison.
"""

import logging
import warnings
from pathlib import Path
from typing import Literal, Optional, Union

import joblib
import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from pygam import LogisticGAM, s
from scipy import stats
from sklearn.metrics import roc_auc_score

from .config import (
    AIC_IMPROVEMENT,
    DEFAULT_N_SPLINES,
    GAM_MAX_ITER,
    GLM_MAX_ITER,
    MIN_N_SPLINES,
    SIGNIFICANCE_LEVEL,
)
from .data import coerce_numeric, prepare_model_frame, require_columns
from .errors import ConvergenceError, DegenerateCovariateError, ModelFitError
from .schema import COVARIATES, LABEL_COL

logger = logging.getLogger(__name__)


Family = Literal["glm", "gam"]
INTERCEPT = "Intercept"


class PresenceModel:
    """
    Binomial model of presence probability as a function of covariates.

    ``glm`` is a logistic regression, linear in each covariate. ``gam`` replaces
    every linear term with a penalised spline whose basis size (``n_splines``)
    bounds how wiggly the fitted curve may be.
    """

    FAMILIES = ("glm", "gam")

    def __init__(
        self,
        family: Family = "glm",
        covariates: Optional[list[str]] = None,
        n_splines: Union[int, dict[str, int], None] = None,
        label: str = LABEL_COL,
    ):
        """
        Initialize the model.

        Args:
            family: "glm" (logistic regression) or "gam" (smooth terms)
            covariates: Covariate columns (default: the full covariate set)
            n_splines: GAM basis size, one value for all covariates or a
                mapping per covariate (default: DEFAULT_N_SPLINES)
            label: Binary response column
        """
        if family not in self.FAMILIES:
            raise ValueError(f"Unknown model family: {family}. Choose from {list(self.FAMILIES)}")

        self.family = family
        self.covariates = list(covariates) if covariates is not None else list(COVARIATES)
        self.label = label
        self.n_splines = self._resolve_n_splines(n_splines) if family == "gam" else {}

        self.result = None
        self.is_fitted = False
        self.fit_stats = {}

    def _resolve_n_splines(self, n_splines) -> dict[str, int]:
        if n_splines is None:
            n_splines = DEFAULT_N_SPLINES
        if isinstance(n_splines, dict):
            unknown = set(n_splines) - set(self.covariates)
            if unknown:
                raise ValueError(f"n_splines given for unknown covariates: {sorted(unknown)}")
            resolved = {c: int(n_splines.get(c, DEFAULT_N_SPLINES)) for c in self.covariates}
        else:
            resolved = {c: int(n_splines) for c in self.covariates}

        for covariate, k in resolved.items():
            if k < MIN_N_SPLINES:
                raise ValueError(f"n_splines for '{covariate}' must be at least {MIN_N_SPLINES}, got {k}")
        return resolved

    @property
    def formula(self) -> str:
        if self.family == "gam":
            terms = [f"s({c}, k={self.n_splines[c]})" for c in self.covariates]
        else:
            terms = self.covariates
        return f"{self.label} ~ {' + '.join(terms)}"

    def fit(self, observations: pd.DataFrame) -> dict:
        """
        Fit the model to an observation table.

        Args:
            observations: Table with the label and every covariate column

        Returns:
            Dictionary with fit statistics
        """
        frame = prepare_model_frame(observations, self.covariates, label=self.label)
        y = frame[self.label].to_numpy()

        logger.info(f"Fitting {self.family.upper()}: {self.formula} ({len(frame)} observations)")

        if self.family == "glm":
            self._fit_glm(frame)
            fitted = np.asarray(self.result.fittedvalues)
            aic = float(self.result.aic)
            explained = 1.0 - float(self.result.deviance) / float(self.result.null_deviance)
        else:
            self._fit_gam(frame)
            fitted = self.result.predict_mu(frame[self.covariates].to_numpy(dtype=float))
            aic = float(self.result.statistics_["AIC"])
            explained = float(self.result.statistics_["pseudo_r2"]["explained_deviance"])

        self.is_fitted = True
        n_presence = int(y.sum())
        self.fit_stats = {
            "family": self.family,
            "formula": self.formula,
            "n_obs": int(len(y)),
            "n_presence": n_presence,
            "n_absence": int(len(y) - n_presence),
            "prevalence": float(y.mean()),
            "aic": aic,
            "explained_deviance": explained,
            "auc": float(roc_auc_score(y, fitted)),
        }
        logger.info(f"  AIC: {aic:.2f}  AUC: {self.fit_stats['auc']:.3f}  deviance explained: {explained:.1%}")
        return self.fit_stats

    def _fit_glm(self, frame: pd.DataFrame) -> None:
        model = smf.glm(self.formula, data=frame, family=sm.families.Binomial())
        if np.linalg.matrix_rank(model.exog) < model.exog.shape[1]:
            raise DegenerateCovariateError(f"Design matrix is rank deficient for {self.formula}")

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                result = model.fit(maxiter=GLM_MAX_ITER)
            except np.linalg.LinAlgError as exc:
                raise DegenerateCovariateError(f"Singular design matrix for {self.formula}: {exc}") from exc
            except ValueError as exc:
                raise ModelFitError(f"GLM fit failed for {self.formula}: {exc}") from exc

        _raise_on_convergence_warning(caught, self.formula)
        if not getattr(result, "converged", True):
            raise ConvergenceError(f"IRLS did not converge within {GLM_MAX_ITER} iterations for {self.formula}")
        if not np.all(np.isfinite(result.params)):
            raise ModelFitError(f"GLM produced non-finite coefficients for {self.formula}")
        self.result = result

    def _fit_gam(self, frame: pd.DataFrame) -> None:
        terms = None
        for i, covariate in enumerate(self.covariates):
            k = self.n_splines[covariate]
            term = s(i, n_splines=k, spline_order=min(3, k - 1))
            terms = term if terms is None else terms + term

        gam = LogisticGAM(terms, max_iter=GAM_MAX_ITER)
        X = frame[self.covariates].to_numpy(dtype=float)
        y = frame[self.label].to_numpy()

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                gam.fit(X, y)
            except np.linalg.LinAlgError as exc:
                raise DegenerateCovariateError(f"Singular penalised design for {self.formula}: {exc}") from exc
            except ValueError as exc:
                raise ModelFitError(f"GAM fit failed for {self.formula}: {exc}") from exc

        _raise_on_convergence_warning(caught, self.formula)
        if not np.all(np.isfinite(gam.coef_)):
            raise ModelFitError(f"GAM produced non-finite coefficients for {self.formula}")
        self.result = gam

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise RuntimeError("Model has not been fitted yet")

    @property
    def aic(self) -> float:
        self._check_fitted()
        return self.fit_stats["aic"]

    def summary(self) -> pd.DataFrame:
        """
        Per-term significance table.

        For GLM terms ``estimate`` is the coefficient on the logit scale and
        ``statistic`` the Wald z. For smooth terms ``estimate`` is empty (the
        term is a curve, see ``plot_smooth_terms``) and ``statistic`` is the
        Wald chi-square of the term's spline coefficients.

        Returns:
            DataFrame indexed by term with estimate, std_error, statistic,
            p_value and edof columns
        """
        self._check_fitted()
        if self.family == "glm":
            table = pd.DataFrame({
                "estimate": self.result.params,
                "std_error": self.result.bse,
                "statistic": self.result.tvalues,
                "p_value": self.result.pvalues,
            })
            table["edof"] = 1.0
            table.index.name = "term"
            return table

        gam = self.result
        cov = gam.statistics_["cov"]
        rows = {}
        for i, term in enumerate(gam.terms):
            idx = gam.terms.get_coef_indices(i)
            coef = gam.coef_[idx]
            edof = float(gam.statistics_["edof_per_coef"][idx].sum())
            p_value = float(gam.statistics_["p_values"][i])
            if term.isintercept:
                se = float(np.sqrt(cov[idx[0], idx[0]]))
                rows[INTERCEPT] = {
                    "estimate": float(coef[0]),
                    "std_error": se,
                    "statistic": float(coef[0] / se) if se > 0 else np.nan,
                    "p_value": p_value,
                    "edof": edof,
                }
            else:
                block = cov[np.ix_(idx, idx)]
                wald = float(coef @ np.linalg.pinv(block) @ coef)
                rows[self.covariates[term.feature]] = {
                    "estimate": np.nan,
                    "std_error": float(np.sqrt(np.mean(np.diag(block)))),
                    "statistic": wald,
                    "p_value": p_value,
                    "edof": edof,
                }

        table = pd.DataFrame.from_dict(rows, orient="index")
        table = table.loc[[INTERCEPT] + self.covariates]
        table.index.name = "term"
        return table

    def coefficient_table(self) -> dict[str, dict]:
        """Summary as a term -> {estimate, std_error, p_value} mapping."""
        table = self.summary()
        return {
            term: {
                "estimate": None if pd.isna(row["estimate"]) else float(row["estimate"]),
                "std_error": float(row["std_error"]),
                "p_value": float(row["p_value"]),
                "edof": float(row["edof"]),
            }
            for term, row in table.iterrows()
        }

    def effective_dof(self) -> dict[str, float]:
        """Effective degrees of freedom of each covariate term."""
        table = self.summary()
        return {c: float(table.loc[c, "edof"]) for c in self.covariates}

    def insignificant_terms(self, alpha: float = SIGNIFICANCE_LEVEL) -> list[str]:
        """Covariates whose p-value exceeds ``alpha``, least significant first."""
        table = self.summary().drop(index=INTERCEPT)
        table = table[table["p_value"] > alpha].sort_values("p_value", ascending=False)
        return list(table.index)

    def predict_proba(self, frame: pd.DataFrame) -> np.ndarray:
        """
        Predict presence probabilities on the response scale.

        Rows missing any required covariate get NaN. Non-numeric text in a
        covariate raises SchemaError.

        Args:
            frame: Table containing every model covariate; extra columns are ignored

        Returns:
            Array of probabilities in [0, 1]
        """
        self._check_fitted()
        require_columns(frame, self.covariates, "prediction table")

        X = coerce_numeric(frame[self.covariates], self.covariates, "prediction table")
        complete = X.notna().all(axis=1).to_numpy()
        probabilities = np.full(len(frame), np.nan)

        if complete.any():
            rows = X[complete]
            if self.family == "glm":
                probabilities[complete] = np.asarray(self.result.predict(rows))
            else:
                probabilities[complete] = self.result.predict_mu(rows.to_numpy(dtype=float))

        return probabilities

    def save(self, path: str | Path) -> None:
        """Save the fitted model to disk."""
        self._check_fitted()

        save_data = {
            "result": self.result,
            "family": self.family,
            "covariates": self.covariates,
            "n_splines": self.n_splines,
            "label": self.label,
            "fit_stats": self.fit_stats,
        }
        joblib.dump(save_data, path)

    @classmethod
    def load(cls, path: str | Path) -> "PresenceModel":
        """Load a fitted model from disk."""
        data = joblib.load(path)

        model = cls(
            family=data["family"],
            covariates=data["covariates"],
            n_splines=data["n_splines"] or None,
            label=data["label"],
        )
        model.result = data["result"]
        model.fit_stats = data["fit_stats"]
        model.is_fitted = True

        return model


def _raise_on_convergence_warning(caught: list, formula: str) -> None:
    for w in caught:
        if "converge" in str(w.message).lower():
            raise ConvergenceError(f"Fit did not converge for {formula}: {w.message}")


def is_improvement(
    candidate: PresenceModel,
    reference: PresenceModel,
    aic_delta: float = AIC_IMPROVEMENT,
) -> bool:
    """True when ``candidate`` has an AIC at least ``aic_delta`` below ``reference``."""
    return reference.aic - candidate.aic >= aic_delta


def compare_models(
    models: dict[str, PresenceModel],
    aic_delta: float = AIC_IMPROVEMENT,
) -> pd.DataFrame:
    """
    Rank fitted models by AIC.

    Args:
        models: Mapping of model name to fitted PresenceModel
        aic_delta: AIC difference treated as a meaningful difference

    Returns:
        DataFrame sorted by AIC with delta_aic to the best model and a
        ``meaningfully_worse`` flag
    """
    if not models:
        raise ValueError("No models to compare")

    rows = []
    for name, model in models.items():
        rows.append({
            "model": name,
            "family": model.family,
            "formula": model.formula,
            "n_obs": model.fit_stats["n_obs"],
            "aic": model.aic,
            "explained_deviance": model.fit_stats["explained_deviance"],
            "auc": model.fit_stats["auc"],
        })

    table = pd.DataFrame(rows).sort_values("aic").reset_index(drop=True)
    table["delta_aic"] = table["aic"] - table["aic"].iloc[0]
    table["meaningfully_worse"] = table["delta_aic"] >= aic_delta
    # Akaike weights
    rel = np.exp(-0.5 * table["delta_aic"])
    table["weight"] = rel / rel.sum()
    return table


def likelihood_ratio_test(reduced: PresenceModel, full: PresenceModel) -> dict:
    """
    Likelihood ratio test of two nested GLMs.

    Returns:
        Dictionary with the deviance difference, degrees of freedom and p-value
    """
    if reduced.family != "glm" or full.family != "glm":
        raise ValueError("Likelihood ratio test is only defined here for GLMs")
    reduced._check_fitted()
    full._check_fitted()
    if not set(reduced.covariates) <= set(full.covariates):
        raise ValueError("Reduced model covariates must be a subset of the full model's")

    deviance = float(reduced.result.deviance - full.result.deviance)
    df = int(round(reduced.result.df_resid - full.result.df_resid))
    return {"deviance": deviance, "df": df, "p_value": float(stats.chi2.sf(deviance, df))}


def backward_select(
    observations: pd.DataFrame,
    covariates: Optional[list[str]] = None,
    family: Family = "glm",
    alpha: float = SIGNIFICANCE_LEVEL,
    aic_delta: float = AIC_IMPROVEMENT,
    **model_kwargs,
) -> tuple[PresenceModel, pd.DataFrame]:
    """
    Drop non-significant covariates one at a time.

    At each step the covariate with the largest p-value above ``alpha`` is
    removed and the model refitted. Selection stops when every term is
    significant, one covariate remains, or the reduced model's AIC is
    ``aic_delta`` or more above the current one.

    Args:
        observations: Observation table
        covariates: Starting covariates (default: the full covariate set)
        family: Model family
        alpha: Significance threshold for removal candidates
        aic_delta: AIC increase that rejects a removal
        **model_kwargs: Passed to PresenceModel (e.g. n_splines)

    Returns:
        Tuple of (selected model, history DataFrame)
    """
    covariates = list(covariates) if covariates is not None else list(COVARIATES)

    def build(covs):
        kwargs = dict(model_kwargs)
        if isinstance(kwargs.get("n_splines"), dict):
            kwargs["n_splines"] = {c: k for c, k in kwargs["n_splines"].items() if c in covs}
        model = PresenceModel(family=family, covariates=covs, **kwargs)
        model.fit(observations)
        return model

    current = build(covariates)
    history = [{"step": 0, "dropped": None, "p_value": None, "n_covariates": len(covariates),
                "aic": current.aic, "accepted": True}]

    step = 0
    while len(current.covariates) > 1:
        candidates = current.insignificant_terms(alpha)
        if not candidates:
            break

        step += 1
        drop = candidates[0]
        p_value = float(current.summary().loc[drop, "p_value"])
        reduced = build([c for c in current.covariates if c != drop])
        accepted = reduced.aic - current.aic < aic_delta

        history.append({"step": step, "dropped": drop, "p_value": p_value,
                        "n_covariates": len(reduced.covariates), "aic": reduced.aic,
                        "accepted": accepted})
        logger.info(f"  Drop {drop} (p={p_value:.3f}): AIC {current.aic:.2f} -> {reduced.aic:.2f}"
                    f"{'' if accepted else ' (rejected)'}")

        if not accepted:
            break
        current = reduced

    return current, pd.DataFrame(history)
