import numpy as np
import pandas as pd
import pytest

from debtpanel import (
    PanelData, ModelSpec, fit,
    RankDeficiencyError, InsufficientObservationsError, SpecificationError,
)
from debtpanel.errors import VarianceComponentWarning
from debtpanel.utils import add_const, ols_fit

# ---------------------------------------------------------------------
# Specification objects
# ---------------------------------------------------------------------

def test_spec_validation():
    with pytest.raises(SpecificationError):
        ModelSpec("y", ("x",), model="between")
    with pytest.raises(SpecificationError):
        ModelSpec("y", ())
    with pytest.raises(SpecificationError):
        ModelSpec("y", ("x", "x"))
    with pytest.raises(SpecificationError):
        ModelSpec("y", ("y", "x"))
    with pytest.raises(SpecificationError):
        ModelSpec("y", ("a", "b"), interaction=("a", "c"))


def test_spec_terms_append_product():
    spec = ModelSpec("y", ["a", "b", "c"], interaction=["a", "b"])
    assert spec.regressors == ("a", "b", "c")
    assert spec.terms == ("a", "b", "c", "a:b")
    assert spec.columns == ("y", "a", "b", "c")


def test_unknown_column_is_specification_error(exact_panel):
    with pytest.raises(SpecificationError, match="Inflation"):
        fit(ModelSpec("GenDebt", ("Inflation",)), exact_panel)


# ---------------------------------------------------------------------
# Within estimator
# ---------------------------------------------------------------------

def test_within_recovers_exact_coefficients(exact_panel):
    model = fit(ModelSpec("GenDebt", ("GDPGrowth", "GenSpend")), exact_panel)
    assert list(model.params.index) == ["GDPGrowth", "GenSpend"]
    assert np.allclose(model.params.to_numpy(), [2.0, -1.0], atol=1e-6)
    assert np.allclose(model.residuals.to_numpy(), 0.0, atol=1e-6)
    assert model.nobs == 12
    assert model.df_resid == 12 - 2 - 3
    assert model.dropped.n_dropped == 0


def test_within_design_is_entity_demeaned(exact_panel):
    model = fit(ModelSpec("GenDebt", ("GDPGrowth", "GenSpend")), exact_panel)
    means = model.design.groupby(level=0).mean()
    assert np.allclose(means.to_numpy(), 0.0, atol=1e-12)


def test_single_period_entity_is_dropped(exact_panel):
    frame = exact_panel.to_frame()
    extra = pd.DataFrame({"region": ["D"], "year": [2001], "GenDebt": [5.0],
                          "GDPGrowth": [1.0], "GenSpend": [3.0]})
    panel = PanelData(pd.concat([frame, extra], ignore_index=True))

    model = fit(ModelSpec("GenDebt", ("GDPGrowth", "GenSpend")), panel)
    assert model.dropped.singletons == 1
    assert model.nobs == 12
    assert "D" not in set(model.entities)
    assert np.allclose(model.params.to_numpy(), [2.0, -1.0], atol=1e-6)


def test_missing_rows_dropped_and_counted(exact_panel):
    frame = exact_panel.to_frame()
    frame.loc[[1, 6], "GenSpend"] = np.nan
    frame.loc[9, "GDPGrowth"] = np.nan
    model = fit(ModelSpec("GenDebt", ("GDPGrowth", "GenSpend")), PanelData(frame))
    assert model.dropped.missing == 3
    assert model.dropped.missing_by_column == {"GDPGrowth": 1, "GenSpend": 2}
    assert model.nobs == 9
    assert model.dropped.as_dict()["n_used"] == 9


def test_time_invariant_regressor_is_rank_deficient(exact_panel):
    panel = exact_panel.with_columns(
        Legal=np.repeat([1.0, 2.0, 3.0], 4),
    )
    with pytest.raises(RankDeficiencyError) as info:
        fit(ModelSpec("GenDebt", ("GDPGrowth", "Legal")), panel)
    assert info.value.columns == ("GDPGrowth", "Legal")


def test_too_few_observations(exact_panel):
    frame = exact_panel.to_frame().iloc[:2]  # one entity, two years
    with pytest.raises(InsufficientObservationsError):
        fit(ModelSpec("GenDebt", ("GDPGrowth", "GenSpend")), PanelData(frame))


def test_two_way_runs_and_absorbs_period_shocks(exact_panel):
    shocks = np.tile([0.0, 3.0, -2.0, 7.0], 3)
    frame = exact_panel.to_frame()
    frame["GenDebt"] = frame["GenDebt"] + shocks
    model = fit(ModelSpec("GenDebt", ("GDPGrowth", "GenSpend")), PanelData(frame),
                two_way=True)
    assert np.allclose(model.params.to_numpy(), [2.0, -1.0], atol=1e-6)
    assert model.df_resid == 12 - 2 - 3 - 3


# ---------------------------------------------------------------------
# Pooled and random effects
# ---------------------------------------------------------------------

def test_pooling_has_intercept(fe_panel):
    model = fit(ModelSpec("y", ("x1", "x2"), model="pooling"), fe_panel)
    assert list(model.params.index) == ["const", "x1", "x2"]
    assert model.df_resid == fe_panel.n_entities * 8 - 3
    assert model.theta is None


def test_random_effects_weights_between_pooled_and_within(fe_panel):
    model = fit(ModelSpec("y", ("x1", "x2"), model="random"), fe_panel)
    assert "const" in model.params.index
    assert model.variance_components["sigma2_u"] > 0
    assert ((model.theta > 0) & (model.theta < 1)).all()


def test_negative_variance_component_truncated(rng):
    n, T = 6, 5
    units = np.repeat(np.arange(n), T)
    x = rng.normal(size=n * T)
    e = rng.normal(size=n * T)
    # no between-entity variation at all
    x = x - pd.Series(x).groupby(units).transform("mean").to_numpy()
    e = e - pd.Series(e).groupby(units).transform("mean").to_numpy()
    panel = PanelData(pd.DataFrame({
        "region": units, "year": np.tile(np.arange(T), n), "y": 1.5 * x + e, "x": x,
    }))

    with pytest.warns(VarianceComponentWarning):
        re = fit(ModelSpec("y", ("x",), model="random"), panel)
    pooled = fit(ModelSpec("y", ("x",), model="pooling"), panel)
    assert re.variance_components["sigma2_u"] == 0.0
    assert np.allclose(re.theta.to_numpy(), 0.0)
    assert np.allclose(re.params.to_numpy(), pooled.params.to_numpy())


# ---------------------------------------------------------------------
# Least-squares helper
# ---------------------------------------------------------------------

def test_ols_fit_uses_n_minus_k(rng):
    X = add_const(rng.normal(size=(10, 2)))
    y = rng.normal(size=10)
    _, se, e, s2 = ols_fit(X, y)
    assert s2 == pytest.approx(e @ e / 7)
    assert np.allclose(se, np.sqrt(np.diag(s2 * np.linalg.inv(X.T @ X))))
    with pytest.raises(InsufficientObservationsError):
        ols_fit(X[:3], y[:3])
