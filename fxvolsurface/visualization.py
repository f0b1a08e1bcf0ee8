"""
Visualization module: 2D smile charts and 3D local volatility surfaces.

Two backends:
    - matplotlib: high-resolution static PNGs
    - plotly: interactive HTML with rotation, zoom, hover tooltips

Both use the same dark theme. Inputs are the pandas tables from
``summary`` (smile_grid, local_vol_frame), so the charts never query a
surface themselves.

Grid nodes holding the illegal local vol are masked out of the 3D plots.
"""

from pathlib import Path

import numpy as np
import pandas as pd

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for server/CI environments
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d import Axes3D  # noqa: F401 (needed for 3d projection)

import plotly.graph_objects as go

from . import config


def _output_path(output_path, filename: str) -> str:
    if output_path is None:
        output_path = config.OUTPUT_DIR / filename
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    return str(output_path)


def _time_label(t: float) -> str:
    if t < 1.0:
        return f"{t * 12:.1f}M"
    return f"{t:.2f}Y"


def _local_vol_meshes(grid: pd.DataFrame):
    """(T, K, sigma) meshes of shape (n_times, n_strikes), sentinel masked."""
    times = np.sort(grid["time"].unique())
    n_k = len(grid) // len(times)
    ordered = grid.sort_values(["time", "strike"])
    T_mesh = ordered["time"].values.reshape(len(times), n_k)
    K_mesh = ordered["strike"].values.reshape(len(times), n_k)
    LV_mesh = np.where(ordered["illegal"].values, np.nan, ordered["local_vol"].values)
    return T_mesh, K_mesh, LV_mesh.reshape(len(times), n_k)


# ════════════════════════════════════════════════════════════════════════
#  MATPLOTLIB / 2D SMILES (static PNG)
# ════════════════════════════════════════════════════════════════════════

def plot_smiles_matplotlib(
    grid: pd.DataFrame,
    pair: str = None,
    model: str = "",
    output_path: str = None,
) -> None:
    """
    Render implied vol smiles, one curve per expiry.

    Parameters
    ----------
    grid : DataFrame from summary.smile_grid
    pair : currency pair for the title (default: config.EXAMPLE_PAIR)
    model : smile model name for the title
    output_path : PNG save path (default: config.OUTPUT_DIR / "fx_smiles_2d.png")
    """
    if pair is None:
        pair = config.EXAMPLE_PAIR
    output_path = _output_path(output_path, "fx_smiles_2d.png")

    fig, ax = plt.subplots(figsize=(config.FIG_WIDTH_2D, config.FIG_HEIGHT_2D))
    fig.patch.set_facecolor(config.DARK_BG)
    ax.set_facecolor(config.DARK_BG)

    for i, (t, subset) in enumerate(grid.groupby("time")):
        color = config.SMILE_COLORS[i % len(config.SMILE_COLORS)]
        ax.plot(subset["moneyness"], subset["vol"] * 100, color=color,
                linewidth=2.2, label=_time_label(t))

    # forward line
    ax.axvline(1.0, color="white", alpha=0.35, linestyle="--", linewidth=1)

    ax.set_xlabel("Moneyness (K / F)", fontsize=13, color="white")
    ax.set_ylabel("Implied Volatility (\u03c3) %", fontsize=13, color="white")
    title = f"{pair} | Implied Volatility Smiles"
    if model:
        title += f" ({model.upper()})"
    ax.set_title(title, fontsize=17, fontweight="bold", color="white")
    ax.tick_params(colors="white", labelsize=10)
    ax.grid(True, alpha=0.12, color="white")

    leg = ax.legend(title="Expiry", loc="upper center", fontsize=10,
                    title_fontsize=11, facecolor="#191930", edgecolor="#ffffff30",
                    labelcolor="white")
    leg.get_title().set_color("white")

    for spine in ax.spines.values():
        spine.set_color("#333355")

    plt.tight_layout()
    plt.savefig(output_path, dpi=config.DPI, bbox_inches="tight",
                facecolor=config.DARK_BG, edgecolor="none")
    plt.close()


# ════════════════════════════════════════════════════════════════════════
#  MATPLOTLIB / 3D LOCAL VOL (static PNG)
# ════════════════════════════════════════════════════════════════════════

def plot_local_vol_matplotlib(
    grid: pd.DataFrame,
    pair: str = None,
    output_path: str = None,
) -> None:
    """
    Render the fixed local vol grid as a 3D surface.

    Parameters
    ----------
    grid : DataFrame from summary.local_vol_frame
    pair : currency pair for the title
    output_path : PNG save path (default: config.OUTPUT_DIR / "local_vol_3d.png")
    """
    if pair is None:
        pair = config.EXAMPLE_PAIR
    output_path = _output_path(output_path, "local_vol_3d.png")
    T_mesh, K_mesh, LV_mesh = _local_vol_meshes(grid)

    fig = plt.figure(figsize=(config.FIG_WIDTH_3D, config.FIG_HEIGHT_3D))
    ax = fig.add_subplot(111, projection="3d")

    surf = ax.plot_surface(
        K_mesh, T_mesh, LV_mesh * 100,
        cmap=matplotlib.colormaps[config.COLORMAP],
        edgecolor="none",
        alpha=0.95,
        antialiased=True,
    )

    ax.set_xlabel("FX Level (S)", fontsize=13, labelpad=12, color="white")
    ax.set_ylabel("Time (T)", fontsize=13, labelpad=12, color="white")
    ax.set_zlabel("Local Volatility (\u03c3) %", fontsize=13, labelpad=12, color="white")
    ax.set_title(
        f"{pair} | Dupire Local Volatility",
        fontsize=18, fontweight="bold", color="white", pad=20,
    )

    ax.set_facecolor(config.DARK_BG)
    fig.patch.set_facecolor(config.DARK_BG)

    for axis in ["x", "y", "z"]:
        ax.tick_params(axis=axis, colors="white", labelsize=9)

    ax.xaxis.pane.fill = False
    ax.yaxis.pane.fill = False
    ax.zaxis.pane.fill = False
    ax.xaxis.pane.set_edgecolor("#333355")
    ax.yaxis.pane.set_edgecolor("#333355")
    ax.zaxis.pane.set_edgecolor("#333355")
    ax.grid(True, alpha=0.15, color="white")

    ax.view_init(elev=config.ELEV, azim=config.AZIM)

    cbar = fig.colorbar(surf, ax=ax, shrink=0.55, aspect=15, pad=0.08)
    cbar.set_label("Local Vol (%)", fontsize=11, color="white")
    cbar.ax.tick_params(colors="white", labelsize=9)

    plt.tight_layout()
    plt.savefig(output_path, dpi=config.DPI, bbox_inches="tight",
                facecolor=config.DARK_BG, edgecolor="none")
    plt.close()


# ════════════════════════════════════════════════════════════════════════
#  PLOTLY / 3D LOCAL VOL (interactive HTML)
# ════════════════════════════════════════════════════════════════════════

def plot_local_vol_plotly(
    grid: pd.DataFrame,
    pair: str = None,
    output_path: str = None,
) -> None:
    """Render the fixed local vol grid as interactive HTML."""
    if pair is None:
        pair = config.EXAMPLE_PAIR
    output_path = _output_path(output_path, "local_vol_3d.html")
    T_mesh, K_mesh, LV_mesh = _local_vol_meshes(grid)

    axis_style = dict(
        tickfont=dict(size=10, color="#ccc"),
        gridcolor=f"rgba(200,200,200,{config.GRID_COLOR_ALPHA})",
        backgroundcolor=config.DARK_BG,
    )

    fig = go.Figure(data=[go.Surface(
        x=K_mesh, y=T_mesh, z=LV_mesh,
        colorscale="Viridis",
        showscale=True,
        colorbar=dict(
            title=dict(text="LV (\u03c3)", font=dict(size=13, color="white")),
            thickness=18, len=0.55, tickformat=".1%",
            tickfont=dict(color="white", size=11),
        ),
        lighting=dict(ambient=0.45, diffuse=0.65, specular=0.25, roughness=0.6),
        opacity=0.97,
        hovertemplate="S: %{x:.4f}<br>T: %{y:.3f}y<br>LV: %{z:.2%}<extra></extra>",
    )])

    fig.update_layout(
        title=dict(
            text=f"<b>{pair} | Dupire Local Volatility</b>",
            font=dict(size=22, color="white"), x=0.5,
        ),
        scene=dict(
            xaxis=dict(title=dict(text="FX Level (S)", font=dict(size=14, color="#ddd")),
                       **axis_style),
            yaxis=dict(title=dict(text="Time (T)", font=dict(size=14, color="#ddd")),
                       **axis_style),
            zaxis=dict(title=dict(text="Local Vol (\u03c3)", font=dict(size=14, color="#ddd")),
                       tickformat=".1%", **axis_style),
            camera=config.PLOTLY_CAMERA,
            bgcolor=config.DARK_BG,
        ),
        paper_bgcolor=config.DARK_BG,
        font=dict(color="white"),
        width=1100, height=750,
        margin=dict(l=10, r=10, t=60, b=10),
    )

    fig.write_html(output_path)


# ════════════════════════════════════════════════════════════════════════
#  PLOTLY / 2D SMILES (interactive HTML)
# ════════════════════════════════════════════════════════════════════════

def plot_smiles_plotly(
    grid: pd.DataFrame,
    pair: str = None,
    model: str = "",
    output_path: str = None,
) -> None:
    """Render interactive smile chart as HTML."""
    if pair is None:
        pair = config.EXAMPLE_PAIR
    output_path = _output_path(output_path, "fx_smiles_2d.html")

    fig = go.Figure()
    for i, (t, subset) in enumerate(grid.groupby("time")):
        color = config.SMILE_COLORS[i % len(config.SMILE_COLORS)]
        fig.add_trace(go.Scatter(
            x=subset["strike"], y=subset["vol"],
            mode="lines", name=_time_label(t),
            line=dict(color=color, width=2.5),
            hovertemplate="K=%{x:.4f}  IV=%{y:.2%}<extra></extra>",
        ))

    title = f"{pair} | Implied Volatility Smiles"
    if model:
        title += f" ({model.upper()})"
    fig.update_layout(
        title=dict(text=f"<b>{title}</b>", font=dict(size=20, color="white"), x=0.5),
        xaxis=dict(
            title=dict(text="Strike (K)", font=dict(size=14, color="#ddd")),
            tickfont=dict(size=11, color="#ccc"),
            gridcolor="rgba(200,200,200,0.1)",
        ),
        yaxis=dict(
            title=dict(text="Implied Volatility (\u03c3)", font=dict(size=14, color="#ddd")),
            tickformat=".1%",
            tickfont=dict(size=11, color="#ccc"),
            gridcolor="rgba(200,200,200,0.1)",
        ),
        plot_bgcolor=config.DARK_BG,
        paper_bgcolor=config.DARK_BG,
        font=dict(color="white"),
        legend=dict(
            x=0.86, y=0.97, bgcolor="rgba(25,25,45,0.85)",
            bordercolor="rgba(255,255,255,0.15)", borderwidth=1,
            font=dict(size=12),
            title=dict(text="Expiry", font=dict(size=12, color="#ccc")),
        ),
        width=1000, height=550,
        margin=dict(l=60, r=30, t=60, b=50),
    )

    fig.write_html(output_path)
