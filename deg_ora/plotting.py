import logging
from pathlib import Path
from typing import Dict, List, Union

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from matplotlib.gridspec import GridSpec
from plotly.subplots import make_subplots

from deg_ora.enrichment import format_term_label

logger = logging.getLogger(__name__)

# g:Profiler's own source palette and source order
SOURCE_COLORS: Dict[str, str] = {
    "GO:MF": "#dc3912",
    "GO:BP": "#ff9900",
    "GO:CC": "#109618",
    "KEGG": "#dd4477",
    "REAC": "#3366cc",
    "WP": "#0099c6",
    "TF": "#5574a6",
    "MIRNA": "#22aa99",
    "HPA": "#6633cc",
    "CORUM": "#66aa00",
    "HP": "#990099",
}
DEFAULT_COLOR = "#777777"
Y_CAP = 16.0
BLOCK_WIDTH = 1.0
BLOCK_GAP = 0.15
REQUIRED_COLUMNS = ("source", "p_value", "term_id", "term_name")


def source_order(sources: List[str]) -> List[str]:
    """Known sources in g:Profiler order, followed by any others alphabetically."""
    present = list(dict.fromkeys(sources))
    known = [source for source in SOURCE_COLORS if source in present]
    return known + sorted(source for source in present if source not in SOURCE_COLORS)


def manhattan_data(df: pd.DataFrame, capped: bool = True) -> pd.DataFrame:
    """
    Compute Manhattan plot coordinates for each enriched term.

    Each source gets a block on the x axis; inside the block terms are placed
    by their ``source_order`` (falling back to term id order). The y value is
    -log10(p), limited to 16 when ``capped``.

    :param df: Result table from :meth:`Enrichment.to_dataframe`
    :param capped: Cap -log10(p) at 16
    :returns: Copy of ``df`` with ``x``, ``y``, ``is_capped``, ``color``,
        ``label`` and ``marker_size`` columns
    """
    if df.empty:
        raise ValueError("No enriched terms to plot")

    missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Result table is missing columns: {', '.join(missing)}")

    data = df.copy()
    data["x"] = np.nan
    data["query"] = data["query"].fillna("").astype(str) if "query" in data.columns else ""
    for column in ("term_size", "intersection_size"):
        if column not in data.columns:
            data[column] = np.nan
    if "source_order" not in data.columns:
        data["source_order"] = np.nan
    data["source_order"] = pd.to_numeric(data["source_order"], errors="coerce")

    for block, source in enumerate(source_order(data["source"].tolist())):
        mask = data["source"] == source
        orders = data.loc[mask, "source_order"]
        if orders.isna().any():
            orders = data.loc[mask, "term_id"].rank(method="first")
        low, high = orders.min(), orders.max()
        span = high - low
        relative = (orders - low) / span if span > 0 else pd.Series(0.5, index=orders.index)
        start = block * (BLOCK_WIDTH + BLOCK_GAP)
        data.loc[mask, "x"] = start + 0.05 + relative * (BLOCK_WIDTH - 0.1)

    p_values = pd.to_numeric(data["p_value"], errors="coerce").clip(lower=np.finfo(float).tiny)
    y = -np.log10(p_values)
    data["is_capped"] = (y > Y_CAP) & capped
    data["y"] = y.clip(upper=Y_CAP) if capped else y
    data["color"] = data["source"].map(SOURCE_COLORS).fillna(DEFAULT_COLOR)
    data["label"] = [
        format_term_label(term_id, name) for term_id, name in zip(data["term_id"], data["term_name"])
    ]
    term_size = pd.to_numeric(data["term_size"], errors="coerce").fillna(1).clip(lower=1)
    data["marker_size"] = 6 + 4 * np.log10(term_size)
    return data


def _block_ticks(sources: List[str]) -> Dict[str, float]:
    return {
        source: block * (BLOCK_WIDTH + BLOCK_GAP) + BLOCK_WIDTH / 2
        for block, source in enumerate(sources)
    }


def _queries(data: pd.DataFrame) -> List[str]:
    return list(dict.fromkeys(data["query"].tolist()))


def top_terms(df: pd.DataFrame, top_n: int = 10) -> pd.DataFrame:
    """The ``top_n`` terms with the smallest p-values, keeping the table's columns."""
    if top_n <= 0:
        return df.iloc[0:0]
    return df.sort_values("p_value", kind="mergesort").head(top_n)


def gostplot(df: pd.DataFrame, capped: bool = True) -> go.Figure:
    """
    Build the interactive Manhattan plot of enriched terms.

    One panel per query; points are coloured by source and sized by term size.
    """
    data = manhattan_data(df, capped=capped)
    sources = source_order(data["source"].tolist())
    ticks = _block_ticks(sources)
    queries = _queries(data)

    fig = make_subplots(
        rows=len(queries),
        cols=1,
        shared_xaxes=True,
        vertical_spacing=0.08,
        subplot_titles=queries if len(queries) > 1 else None,
    )
    for row, query in enumerate(queries, start=1):
        panel = data[data["query"] == query]
        for source in sources:
            points = panel[panel["source"] == source]
            if points.empty:
                continue
            fig.add_trace(
                go.Scatter(
                    x=points["x"],
                    y=points["y"],
                    mode="markers",
                    name=source,
                    legendgroup=source,
                    showlegend=row == 1,
                    marker=dict(
                        color=SOURCE_COLORS.get(source, DEFAULT_COLOR),
                        size=points["marker_size"],
                        opacity=0.8,
                        line=dict(width=0.5, color="white"),
                    ),
                    customdata=points[
                        ["term_id", "term_name", "p_value", "term_size", "intersection_size"]
                    ].to_numpy(dtype=object),
                    hovertemplate=(
                        "<b>%{customdata[0]}</b><br>%{customdata[1]}<br>"
                        "p_adj: %{customdata[2]:.3e}<br>"
                        "term size: %{customdata[3]}<br>"
                        "intersection: %{customdata[4]}<extra></extra>"
                    ),
                ),
                row=row,
                col=1,
            )
        if capped:
            fig.add_hline(y=Y_CAP, line_dash="dash", line_color="#999999", row=row, col=1)
        fig.update_yaxes(
            title_text="-log10(p_adj)",
            range=[0, (Y_CAP if capped else max(float(data["y"].max()), 1.0)) + 0.5],
            row=row,
            col=1,
        )

    fig.update_xaxes(
        tickmode="array",
        tickvals=[ticks[source] for source in sources],
        ticktext=sources,
        range=[0, len(sources) * (BLOCK_WIDTH + BLOCK_GAP)],
        showgrid=False,
    )
    fig.update_layout(
        template="plotly_white",
        height=350 * len(queries) + 80,
        legend_title_text="Source",
        margin=dict(l=60, r=20, t=40, b=40),
    )
    return fig


def bar_chart(df: pd.DataFrame, top_n: int = 10) -> go.Figure:
    """
    Horizontal bar chart of the strongest terms.

    :param df: Result table
    :param top_n: Number of terms shown
    """
    if df.empty:
        raise ValueError("No enriched terms to plot")
    bar = top_terms(df, top_n).copy()
    bar["Term"] = [format_term_label(i, n) for i, n in zip(bar["term_id"], bar["term_name"])]
    bar["-log10(p-value)"] = -np.log10(
        pd.to_numeric(bar["p_value"], errors="coerce").clip(lower=np.finfo(float).tiny)
    )
    bar = bar.sort_values(by=["-log10(p-value)"])
    fig = px.bar(
        bar,
        x="-log10(p-value)",
        y="Term",
        color="source",
        orientation="h",
        color_discrete_map=SOURCE_COLORS,
        labels={"-log10(p-value)": "−log₁₀(p‐value)", "Term": "Term", "source": "Source"},
    )
    fig.update_layout(template="plotly_white", yaxis={"categoryorder": "total ascending"})
    return fig


def write_gostplot_html(
    df: pd.DataFrame, path: Union[str, Path], capped: bool = True, include_plotlyjs: str = "cdn"
) -> Path:
    path = Path(path)
    fig = gostplot(df, capped=capped)
    fig.write_html(str(path), include_plotlyjs=include_plotlyjs)
    logger.info(f"Saved interactive Manhattan plot to {path}")
    return path


def publish_gostplot(
    df: pd.DataFrame,
    path: Union[str, Path],
    top_n: int = 10,
    capped: bool = True,
    dpi: int = 300,
) -> Path:
    """
    Render the static Manhattan plot with the top terms numbered and tabulated.

    :param df: Result table
    :param path: Output image path; the format follows the suffix
    :param top_n: Number of highlighted terms
    :param capped: Cap -log10(p) at 16
    :param dpi: Image resolution
    :returns: The written path
    """
    path = Path(path)
    data = manhattan_data(df, capped=capped)
    sources = source_order(data["source"].tolist())
    ticks = _block_ticks(sources)
    queries = _queries(data)
    highlight = top_terms(data, top_n)
    highlight_ids = {index: n for n, index in enumerate(highlight.index, start=1)}

    n_panels = len(queries)
    table_height = 0.35 * (len(highlight) + 1) if len(highlight) else 0.0
    fig = plt.figure(figsize=(10, 3.2 * n_panels + table_height + 0.4))
    grid = GridSpec(
        n_panels + (1 if len(highlight) else 0),
        1,
        figure=fig,
        height_ratios=[3.2] * n_panels + ([table_height] if len(highlight) else []),
        hspace=0.35,
    )

    y_max = Y_CAP if capped else max(float(data["y"].max()), 1.0)
    for row, query in enumerate(queries):
        ax = fig.add_subplot(grid[row, 0])
        panel = data[data["query"] == query]
        for source in sources:
            points = panel[panel["source"] == source]
            if points.empty:
                continue
            ax.scatter(
                points["x"],
                points["y"],
                s=points["marker_size"] ** 2,
                c=SOURCE_COLORS.get(source, DEFAULT_COLOR),
                alpha=0.75,
                edgecolors="white",
                linewidths=0.4,
                label=source if row == 0 else None,
            )
        for index, point in panel.iterrows():
            if index not in highlight_ids:
                continue
            ax.annotate(
                str(highlight_ids[index]),
                (point["x"], point["y"]),
                xytext=(0, 7),
                textcoords="offset points",
                ha="center",
                fontsize=7,
                bbox=dict(boxstyle="round,pad=0.15", fc="white", ec="black", lw=0.5),
            )
        if capped:
            ax.axhline(Y_CAP, color="#999999", linestyle="--", linewidth=0.8)
        ax.set_xlim(0, len(sources) * (BLOCK_WIDTH + BLOCK_GAP))
        ax.set_ylim(0, y_max + 1.5)
        ax.set_xticks([ticks[source] for source in sources])
        ax.set_xticklabels(sources)
        ax.set_ylabel("-log10(p_adj)")
        for spine in ("top", "right"):
            ax.spines[spine].set_visible(False)
        if n_panels > 1:
            ax.set_title(query, loc="left", fontsize=10)

    fig.axes[0].legend(loc="upper right", fontsize=7, frameon=False, ncol=min(len(sources), 6))

    if len(highlight):
        table_ax = fig.add_subplot(grid[n_panels, 0])
        table_ax.axis("off")
        columns = ["id", "source", "term_id", "term_name", "p_adj"]
        if n_panels > 1:
            columns.insert(1, "query")
        rows = []
        for n, (_, term) in enumerate(highlight.iterrows(), start=1):
            row = {
                "id": str(n),
                "query": term["query"],
                "source": term["source"],
                "term_id": term["term_id"],
                "term_name": str(term["term_name"])[:60],
                "p_adj": f"{term['p_value']:.3e}",
            }
            rows.append([row[column] for column in columns])
        table = table_ax.table(cellText=rows, colLabels=columns, loc="upper center", cellLoc="left")
        table.auto_set_font_size(False)
        table.set_fontsize(7)
        table.auto_set_column_width(list(range(len(columns))))

    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved static Manhattan plot to {path}")
    return path
