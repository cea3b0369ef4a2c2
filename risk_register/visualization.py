"""Matplotlib rendering of loss exceedance curves.

Draws a :class:`~risk_register.lec.CurveBundle` as overlaid step curves on a
shared loss axis, in a clean publication style. The first curve in the
bundle is treated as the root and drawn first; the others follow
alphabetically. Dashed rules mark the root curve's P50 and P95 losses.
"""

from typing import Hashable, List, Optional, Tuple

import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.ticker import FuncFormatter, PercentFormatter

from .lec import CurveBundle

RISK_COLORS = [
    "#60B0F0",  # light blue
    "#F2A64A",  # orange
    "#75B56A",  # green
    "#E1716A",  # red
    "#6DF9CE",  # cyan
    "#515151",  # dark gray
    "#838383",  # light gray
    "#AB5C0C",  # brown
    "#350C28",  # purple-black
]

QUANTILE_RULE_COLOR = "#6A8A8E"

#: Headroom above the highest starting exceedance.
Y_BUFFER = 1.1


def set_chart_style():
    """Apply the package's matplotlib style (sans-serif, light grid, no top/right spines)."""
    plt.style.use("seaborn-v0_8-whitegrid")
    plt.rcParams.update(
        {
            "font.family": "sans-serif",
            "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
            "font.size": 11,
            "axes.titlesize": 14,
            "axes.labelsize": 12,
            "legend.fontsize": 10,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.edgecolor": "#666666",
            "grid.color": "#E0E0E0",
            "grid.alpha": 0.5,
            "lines.linewidth": 2,
        }
    )


def format_loss(value: float, decimals: int = 1) -> str:
    """Abbreviate a loss for axis labels.

    Examples:
        >>> format_loss(2_500_000)
        '2.5M'
        >>> format_loss(750)
        '750'
    """
    magnitude = abs(value)
    if magnitude >= 1e9:
        return f"{value / 1e9:.{decimals}f}B"
    if magnitude >= 1e6:
        return f"{value / 1e6:.{decimals}f}M"
    if magnitude >= 1e3:
        return f"{value / 1e3:.{decimals}f}K"
    return f"{value:,.0f}"


def _draw_order(bundle: CurveBundle) -> List[Hashable]:
    keys = [key for key in bundle.keys if bundle.exceedance[key]]
    if not keys:
        return []
    root, children = keys[0], keys[1:]
    return [root] + sorted(children, key=str)


def plot_loss_exceedance(
    bundle: CurveBundle,
    ax: Optional[Axes] = None,
    title: str = "Loss Exceedance Curve",
    log_scale: bool = True,
    show_quantiles: bool = True,
    figsize: Tuple[int, int] = (10, 5),
) -> Figure:
    """Plot every curve in ``bundle`` on one axis.

    Args:
        bundle: Curves on a shared tick domain.
        ax: Axes to draw on; a new figure is created when None.
        title: Chart title.
        log_scale: Use a logarithmic loss axis.
        show_quantiles: Mark the root curve's P50 and P95.
        figsize: Size of the new figure when ``ax`` is None.

    Returns:
        The figure containing the chart.

    Examples:
        >>> bundle = CurveBundle.from_outcomes({"ops": ops, "cyber": cyber})
        >>> fig = plot_loss_exceedance(bundle, title="Operations")
        >>> fig.savefig("ops_lec.png")
    """
    set_chart_style()
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    order = _draw_order(bundle)
    if not order:
        ax.text(
            0.5,
            0.5,
            "No losses simulated",
            ha="center",
            va="center",
            transform=ax.transAxes,
            fontsize=12,
        )
        ax.set_title(title)
        return fig

    for i, key in enumerate(order):
        ax.step(
            bundle.ticks,
            bundle.exceedance[key],
            where="post",
            color=RISK_COLORS[i % len(RISK_COLORS)],
            label=str(key),
        )

    root = order[0]
    if show_quantiles:
        for name in ("p50", "p95"):
            value = bundle.quantiles.get(root, {}).get(name)
            if value is None:
                continue
            ax.axvline(value, color=QUANTILE_RULE_COLOR, linestyle="--", linewidth=1)
            ax.annotate(
                name.upper(),
                xy=(value, 1.0),
                xycoords=("data", "axes fraction"),
                xytext=(4, -12),
                textcoords="offset points",
                fontsize=10,
                color=QUANTILE_RULE_COLOR,
            )

    y_ceiling = min(1.0, max(bundle.exceedance[key][0] for key in order) * Y_BUFFER)
    ax.set_ylim(0.0, y_ceiling)
    if log_scale:
        ax.set_xscale("log")
    ax.set_xlim(left=bundle.ticks[0])
    ax.xaxis.set_major_formatter(FuncFormatter(lambda x, _: format_loss(x)))
    ax.yaxis.set_major_formatter(PercentFormatter(xmax=1.0, decimals=1))
    ax.set_xlabel("Loss")
    ax.set_ylabel("Probability of exceedance")
    ax.set_title(title)
    ax.legend(title="Risk modelled", loc="upper right")
    return fig
