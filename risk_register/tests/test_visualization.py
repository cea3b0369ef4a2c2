"""Tests for loss exceedance charts."""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402  pylint: disable=wrong-import-position
import pytest  # noqa: E402  pylint: disable=wrong-import-position

from risk_register.lec import CurveBundle  # noqa: E402  pylint: disable=wrong-import-position
from risk_register.outcome import Outcome  # noqa: E402  pylint: disable=wrong-import-position
from risk_register.visualization import (  # noqa: E402  pylint: disable=wrong-import-position
    RISK_COLORS,
    format_loss,
    plot_loss_exceedance,
)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


@pytest.fixture
def bundle():
    ops = Outcome("ops", {0: 1_000, 1: 5_000, 2: 20_000, 3: 80_000}, n_trials=10)
    hardware = Outcome("hardware", {1: 5_000, 3: 60_000}, n_trials=10)
    cyber = Outcome("cyber", {0: 1_000, 2: 20_000, 3: 20_000}, n_trials=10)
    return CurveBundle.from_outcomes({"ops": ops, "hardware": hardware, "cyber": cyber})


class TestFormatLoss:
    """Test axis label abbreviations."""

    @pytest.mark.parametrize(
        "value,expected",
        [(750, "750"), (2_500, "2.5K"), (2_500_000, "2.5M"), (3_000_000_000, "3.0B")],
    )
    def test_abbreviations(self, value, expected):
        assert format_loss(value) == expected


class TestPlotLossExceedance:
    """Test the chart."""

    def test_draws_root_first_then_alphabetical(self, bundle):
        fig = plot_loss_exceedance(bundle, title="Operations")
        ax = fig.axes[0]
        labels = [line.get_label() for line in ax.get_lines()]
        labels = [label for label in labels if not label.startswith("_")]
        assert labels == ["ops", "cyber", "hardware"]
        assert ax.get_title() == "Operations"
        assert ax.get_lines()[0].get_color().lower() == RISK_COLORS[0].lower()

    def test_log_scale_and_limits(self, bundle):
        ax = plot_loss_exceedance(bundle).axes[0]
        assert ax.get_xscale() == "log"
        bottom, top = ax.get_ylim()
        assert bottom == 0.0
        assert top == pytest.approx(0.4 * 1.1)

    def test_linear_scale(self, bundle):
        ax = plot_loss_exceedance(bundle, log_scale=False).axes[0]
        assert ax.get_xscale() == "linear"

    def test_quantile_rules(self, bundle):
        with_rules = plot_loss_exceedance(bundle).axes[0]
        without_rules = plot_loss_exceedance(bundle, show_quantiles=False).axes[0]
        assert len(with_rules.get_lines()) == len(without_rules.get_lines()) + 2
        assert [t.get_text() for t in with_rules.texts] == ["P50", "P95"]

    def test_draws_on_given_axes(self, bundle):
        fig, ax = plt.subplots()
        assert plot_loss_exceedance(bundle, ax=ax) is fig

    def test_empty_bundle(self):
        quiet = Outcome.empty("quiet", 10)
        fig = plot_loss_exceedance(CurveBundle.from_outcomes({"quiet": quiet}))
        ax = fig.axes[0]
        assert not ax.get_lines()
        assert ax.texts[0].get_text() == "No losses simulated"
