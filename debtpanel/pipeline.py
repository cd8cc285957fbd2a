"""
End-to-end estimation pipeline for the debt panel

    panel -> Breusch-Pagan (pooled vs RE) -> Hausman (RE vs FE)
          -> final model -> HC3 and entity-clustered inference
          -> six moderated FE regressions, each with serial-correlation and
             cross-sectional-dependence tests and a robust covariance

Every stage returns value objects; nothing is mutated between stages, so
the pipeline can be re-run on the same panel without cross-contamination.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from .config import AnalysisConfig, CORE_REGRESSORS, RESPONSE
from .diagnostics import breusch_pagan_lm, hausman, pesaran_cd, white_test, wooldridge_serial
from .errors import DiagnosticError, PanelModelError
from .estimation import FittedModel, ModelSpec, fit
from .heteroskedasticity import CoefficientTest, CovarianceMatrix, coef_test, robust_cov
from .interactions import InteractionSpec, center, fit_interaction, study_interactions
from .results import TestResult

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelChoice:
    """Estimator chosen by the specification tests, and why."""

    model: str
    reason: str
    breusch_pagan: Optional[TestResult] = None
    hausman: Optional[TestResult] = None
    fallback: bool = False


@dataclass(frozen=True, eq=False)
class InteractionOutcome:
    """Result (or failure) of one moderated regression."""

    spec: InteractionSpec
    model: Optional[FittedModel] = None
    serial: Optional[TestResult] = None
    cross_section: Optional[TestResult] = None
    covariance: Optional[CovarianceMatrix] = None
    coefficients: Optional[CoefficientTest] = None
    cov_reason: str = ""
    diagnostic_errors: tuple = ()
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


@dataclass(frozen=True, eq=False)
class AnalysisResult:
    """Everything one analysis run produces."""

    choice: ModelChoice
    core: FittedModel
    core_tests: dict
    white: Optional[TestResult]
    interactions: tuple
    centering: dict = field(default_factory=dict)
    white_error: Optional[str] = None

    def coefficient_tables(self):
        """name -> coefficient DataFrame, ready for export."""
        tables = {}
        for kind, test in self.core_tests.items():
            tables[f"{self.core.spec.name}_{kind}"] = test.table
        for outcome in self.interactions:
            if outcome.ok:
                tables[outcome.spec.name] = outcome.coefficients.table
        return tables

    def failures(self):
        return {o.spec.name: o.error for o in self.interactions if not o.ok}


def _fallback(reason, **tests):
    LOGGER.warning("Estimator choice falls back to fixed effects: %s", reason)
    return ModelChoice(model="within", reason=reason, fallback=True, **tests)


def choose_estimator(panel, regressors=CORE_REGRESSORS, response=RESPONSE, config=None):
    """
    Pick pooling, random or fixed effects from the specification tests.

    Breusch-Pagan decides pooled vs. random effects; if pooling is rejected,
    Hausman decides random vs. fixed effects.  A test that cannot be
    computed blocks its decision and the choice falls back to fixed
    effects, with the failure recorded as the reason.

    Returns
    -------
    ModelChoice
    """
    config = config or AnalysisConfig()
    alpha = config.alpha
    try:
        pooled = fit(ModelSpec(response, regressors, "pooling", name="CorePooled"), panel)
        bp = breusch_pagan_lm(pooled)
    except PanelModelError as exc:
        return _fallback(f"Breusch-Pagan test failed ({type(exc).__name__}: {exc})")

    if not bp.reject(alpha):
        return ModelChoice(
            model="pooling",
            reason=f"Breusch-Pagan p={bp.p_value:.4g} >= {alpha}: no entity effects",
            breusch_pagan=bp,
        )

    try:
        fe = fit(ModelSpec(response, regressors, "within", name="CoreFE"), panel)
        re = fit(ModelSpec(response, regressors, "random", name="CoreRE"), panel)
        ht = hausman(fe, re)
    except PanelModelError as exc:
        return _fallback(f"Hausman test failed ({type(exc).__name__}: {exc})",
                         breusch_pagan=bp)

    if ht.reject(alpha):
        return ModelChoice(
            model="within",
            reason=f"Hausman p={ht.p_value:.4g} < {alpha}: random effects inconsistent",
            breusch_pagan=bp, hausman=ht,
        )
    return ModelChoice(
        model="random",
        reason=f"Hausman p={ht.p_value:.4g} >= {alpha}: random effects consistent and efficient",
        breusch_pagan=bp, hausman=ht,
    )


def residual_inference(model, config=None):
    """
    Serial-correlation and cross-sectional-dependence tests, then the
    covariance they call for.

    Entity clustering is used when the Wooldridge test rejects or cannot
    be computed; HC3 otherwise.  Clustering does not correct
    cross-sectional dependence, so a Pesaran CD rejection is noted.

    Returns
    -------
    dict with keys serial, cross_section, covariance, cov_reason, errors
    """
    config = config or AnalysisConfig()
    errors = []
    serial = cross = None
    try:
        serial = wooldridge_serial(model)
    except DiagnosticError as exc:
        errors.append(f"Wooldridge: {exc}")
    try:
        cross = pesaran_cd(model)
    except DiagnosticError as exc:
        errors.append(f"Pesaran CD: {exc}")

    if serial is None:
        kind = "cluster"
        reason = "serial-correlation test unavailable; defaulting to entity clustering"
    elif serial.reject(config.serial_alpha):
        kind = "cluster"
        reason = f"serial correlation (p={serial.p_value:.4g}); entity-clustered errors"
    else:
        kind = "HC3"
        reason = f"no serial correlation (p={serial.p_value:.4g}); HC3 errors"
    if cross is not None and cross.reject(config.cd_alpha):
        reason += (f"; cross-sectional dependence (p={cross.p_value:.4g}) is not "
                   "corrected by entity clustering")
    for err in errors:
        LOGGER.warning("%s: %s", model.spec.name, err)

    return dict(
        serial=serial,
        cross_section=cross,
        covariance=robust_cov(model, kind),
        cov_reason=reason,
        errors=tuple(errors),
    )


def run_interaction(inter, panel, centering, base_regressors=CORE_REGRESSORS,
                    response=RESPONSE, config=None):
    """
    Fit and test one moderated regression; failures are captured, not raised.

    Returns
    -------
    InteractionOutcome
    """
    config = config or AnalysisConfig()
    try:
        _, model = fit_interaction(inter, panel, base_regressors, centering,
                                   response=response, two_way=config.two_way)
        inf = residual_inference(model, config)
    except PanelModelError as exc:
        LOGGER.error("Interaction %s failed: %s: %s", inter.name, type(exc).__name__, exc)
        return InteractionOutcome(spec=inter, error=f"{type(exc).__name__}: {exc}")

    return InteractionOutcome(
        spec=inter,
        model=model,
        serial=inf["serial"],
        cross_section=inf["cross_section"],
        covariance=inf["covariance"],
        coefficients=coef_test(model, inf["covariance"]),
        cov_reason=inf["cov_reason"],
        diagnostic_errors=inf["errors"],
    )


def run_interactions(panel, interactions=None, base_regressors=CORE_REGRESSORS,
                     response=RESPONSE, config=None):
    """
    Centre every interacted variable once, then run each specification.

    Specifications share only the read-only centred panel, so with
    ``config.max_workers > 1`` they run on a thread pool.

    Returns
    -------
    outcomes : tuple of InteractionOutcome (input order)
    centering : dict
    """
    config = config or AnalysisConfig()
    interactions = study_interactions() if interactions is None else tuple(interactions)
    variables = list(dict.fromkeys(v for i in interactions for v in (i.a, i.b)))
    centred_panel, centering = center(panel, variables)

    def _run(inter):
        return run_interaction(inter, centred_panel, centering, base_regressors,
                               response, config)

    if config.max_workers > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
            outcomes = tuple(pool.map(_run, interactions))
    else:
        outcomes = tuple(_run(i) for i in interactions)

    n_failed = sum(not o.ok for o in outcomes)
    LOGGER.info("Interaction models: %d fitted, %d failed", len(outcomes) - n_failed, n_failed)
    return outcomes, centering


def run_analysis(panel, config=None, regressors=CORE_REGRESSORS, response=RESPONSE,
                 interactions=None):
    """
    Full study run on a validated panel.

    Raises
    ------
    PanelModelError
        If the final core model cannot be estimated (interaction failures
        are recorded in the result instead).
    """
    config = config or AnalysisConfig()
    choice = choose_estimator(panel, regressors, response, config)
    LOGGER.info("Estimator: %s (%s)", choice.model, choice.reason)

    core = fit(ModelSpec(response, regressors, choice.model, name="CorePanel"), panel,
               two_way=config.two_way and choice.model == "within")
    core_tests = {
        "classical": coef_test(core),
        "HC3": coef_test(core, robust_cov(core, "HC3")),
        "cluster": coef_test(core, robust_cov(core, "cluster")),
    }

    white = white_error = None
    try:
        white = white_test(core)
    except PanelModelError as exc:
        white_error = f"{type(exc).__name__}: {exc}"
        LOGGER.warning("White test on the core model failed: %s", white_error)

    outcomes, centering = run_interactions(panel, interactions, regressors, response, config)
    return AnalysisResult(
        choice=choice,
        core=core,
        core_tests=core_tests,
        white=white,
        interactions=outcomes,
        centering=centering,
        white_error=white_error,
    )
