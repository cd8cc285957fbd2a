import numpy as np
import pandas as pd
import pytest

from debtpanel import PanelData, ModelSpec, fit, DiagnosticError
from debtpanel import diagnostics
from debtpanel.diagnostics import (
    breusch_pagan_lm, hausman, hausman_statistic, pesaran_cd, white_test,
    wooldridge_serial,
)

# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _panel(rng, n, T, y_fn, **extra):
    units = np.repeat([f"e{i:02d}" for i in range(n)], T)
    times = np.tile(np.arange(T), n)
    x = rng.normal(size=n * T)
    frame = pd.DataFrame({"region": units, "year": times, "x": x})
    frame["y"] = y_fn(frame)
    for k, v in extra.items():
        frame[k] = v
    return PanelData(frame)


# ---------------------------------------------------------------------
# Breusch-Pagan LM
# ---------------------------------------------------------------------

def test_breusch_pagan_rejects_with_entity_effects(fe_panel):
    pooled = fit(ModelSpec("y", ("x1", "x2"), model="pooling"), fe_panel)
    res = breusch_pagan_lm(pooled)
    assert res.df == 1
    assert res.reject(0.05)


def test_breusch_pagan_balanced_formula(fe_panel):
    pooled = fit(ModelSpec("y", ("x1", "x2"), model="pooling"), fe_panel)
    e = pooled.residuals
    n, T = fe_panel.n_entities, 8
    sums = e.groupby(level=0).sum().to_numpy()
    expected = n * T / (2 * (T - 1)) * (np.sum(sums ** 2) / np.sum(e ** 2) - 1) ** 2
    assert breusch_pagan_lm(pooled).statistic == pytest.approx(expected)


def test_breusch_pagan_needs_pooled_model(fe_panel):
    fe = fit(ModelSpec("y", ("x1", "x2")), fe_panel)
    with pytest.raises(ValueError):
        breusch_pagan_lm(fe)


def test_breusch_pagan_fails_on_single_period_panel(rng):
    panel = _panel(rng, 12, 1, lambda f: 2 * f["x"] + rng.normal(size=len(f)))
    pooled = fit(ModelSpec("y", ("x",), model="pooling"), panel)
    with pytest.raises(DiagnosticError):
        breusch_pagan_lm(pooled)


# ---------------------------------------------------------------------
# Hausman
# ---------------------------------------------------------------------

def test_hausman_statistic_hand_computed():
    b_fe = np.array([1.0, 2.0])
    b_re = np.array([0.5, 1.5])
    v_fe = np.array([[0.50, 0.10], [0.10, 0.50]])
    v_re = np.array([[0.25, 0.10], [0.10, 0.25]])
    # q = [0.5, 0.5], V = diag(0.25, 0.25)  ->  0.25/0.25 + 0.25/0.25
    assert hausman_statistic(b_fe, b_re, v_fe, v_re) == pytest.approx(2.0)


def test_hausman_statistic_magnitude_invariant_to_labels():
    b_fe = np.array([1.2, -0.4, 3.0])
    b_re = np.array([1.0, -0.1, 2.5])
    v_fe = np.diag([0.4, 0.3, 0.9])
    v_re = np.diag([0.1, 0.2, 0.5])
    forward = hausman_statistic(b_fe, b_re, v_fe, v_re)
    swapped = hausman_statistic(b_re, b_fe, v_re, v_fe)
    assert abs(forward) == pytest.approx(abs(swapped))
    assert forward > 0 > swapped


def test_hausman_singular_difference():
    v = np.eye(2)
    with pytest.raises(DiagnosticError):
        hausman_statistic([1, 2], [0, 0], v, v)


def test_hausman_rejects_when_effects_correlated(fe_panel):
    fe = fit(ModelSpec("y", ("x1", "x2")), fe_panel)
    re = fit(ModelSpec("y", ("x1", "x2"), model="random"), fe_panel)
    res = hausman(fe, re)
    assert res.df == 2
    assert res.statistic > 0
    assert res.reject(0.05)


def test_hausman_with_separate_variances_can_go_negative(fe_panel):
    # each model scaled by its own sigma2: V_FE - V_RE is indefinite here
    fe = fit(ModelSpec("y", ("x1", "x2")), fe_panel)
    re = fit(ModelSpec("y", ("x1", "x2"), model="random"), fe_panel)
    with pytest.raises(DiagnosticError, match="negative"):
        hausman(fe, re, shared_variance=False)


def test_negative_hausman_statistic_is_an_error(fe_panel, monkeypatch):
    fe = fit(ModelSpec("y", ("x1", "x2")), fe_panel)
    re = fit(ModelSpec("y", ("x1", "x2"), model="random"), fe_panel)
    monkeypatch.setattr(diagnostics, "hausman_statistic", lambda *args: -3.0)
    with pytest.raises(DiagnosticError, match="negative"):
        hausman(fe, re)


def test_hausman_checks_model_types(fe_panel):
    fe = fit(ModelSpec("y", ("x1", "x2")), fe_panel)
    with pytest.raises(ValueError):
        hausman(fe, fe)


# ---------------------------------------------------------------------
# Wooldridge serial correlation
# ---------------------------------------------------------------------

def test_wooldridge_detects_ar1_errors(rng):
    n, T, rho = 50, 10, 0.9
    u = np.zeros((n, T))
    u[:, 0] = rng.normal(size=n)
    for t in range(1, T):
        u[:, t] = rho * u[:, t - 1] + rng.normal(size=n)
    alpha = np.repeat(rng.normal(0, 3, n), T)
    panel = _panel(rng, n, T, lambda f: 2 * f["x"] + alpha + u.ravel())

    res = wooldridge_serial(fit(ModelSpec("y", ("x",)), panel))
    assert res.df == (1, n - 1)
    assert res.reject(0.01)


def test_wooldridge_needs_three_periods(rng):
    panel = _panel(rng, 10, 2, lambda f: f["x"] + rng.normal(size=len(f)))
    with pytest.raises(DiagnosticError):
        wooldridge_serial(fit(ModelSpec("y", ("x",)), panel))


# ---------------------------------------------------------------------
# Pesaran CD
# ---------------------------------------------------------------------

def test_pesaran_cd_detects_common_shock(rng):
    n, T = 12, 10
    shock = np.tile(rng.normal(0, 3, T), n)
    panel = _panel(rng, n, T, lambda f: f["x"] + shock + 0.3 * rng.normal(size=len(f)))
    res = pesaran_cd(fit(ModelSpec("y", ("x",)), panel))
    assert res.distribution == "normal"
    assert res.statistic > 0
    assert res.reject(0.01)


def test_pesaran_cd_needs_overlapping_periods(rng):
    panel = _panel(rng, 8, 2, lambda f: f["x"] + rng.normal(size=len(f)))
    with pytest.raises(DiagnosticError):
        pesaran_cd(fit(ModelSpec("y", ("x",)), panel))


# ---------------------------------------------------------------------
# White test
# ---------------------------------------------------------------------

def test_white_test_detects_variance_growing_with_fit(rng):
    n, T = 50, 10
    units = np.repeat(np.arange(n), T)
    x = rng.uniform(1, 5, n * T)
    y = 2 * x + x * rng.normal(size=n * T)
    panel = PanelData(pd.DataFrame({
        "region": units, "year": np.tile(np.arange(T), n), "y": y, "x": x,
    }))
    res = white_test(fit(ModelSpec("y", ("x",), model="pooling"), panel))
    assert res.df == 2
    assert res.reject(0.01)
