import logging

import pandas as pd
import streamlit as st

from deg_ora.enrichment import Enrichment
from deg_ora.gene_set import GeneSet
from deg_ora.plotting import bar_chart, gostplot
from deg_ora.ui.utils import download_link

logger = logging.getLogger(__name__)

TABLE_COLUMNS = [
    "query",
    "source",
    "term_id",
    "term_name",
    "p_value",
    "term_size",
    "intersection_size",
    "intersection",
]


def format_p_value(n: float) -> str:
    if n > 0.001:
        return f"{n:.3f}"
    return f"{n:.3e}"


def render_filter_summary(gene_set: GeneSet) -> None:
    """
    Show how many rows survived each DEG filter stage, plus duplicates and rows without symbols.
    """
    logger.info("Rendering DEG filter summary.")
    summary = gene_set.summary()
    stages = summary["stages"]
    cols = st.columns(len(stages) + 2)
    for col, (stage, count) in zip(cols, stages.items()):
        col.metric(stage.replace("_", " "), count)
    cols[-2].metric("up", summary["up"])
    cols[-1].metric("down", summary["down"])

    dups = summary["duplicates"]
    caption = f"{gene_set.size} genes"
    if dups:
        caption += f", ⚠️ {len(dups)} duplicated symbols"
    if summary["non_valid"]:
        caption += f", ⛔ {summary['non_valid']} rows without symbol"
    with st.expander(caption):
        st.dataframe(gene_set.table, use_container_width=True, hide_index=True)
        if dups:
            st.write("Duplicated symbols (first row kept): " + ", ".join(dups))


def render_table(result: pd.DataFrame) -> None:
    """
    Render the enriched terms with formatted p-values.

    :param result: Result table from :meth:`Enrichment.to_dataframe`
    """
    logger.info("Rendering DataFrame in Streamlit app.")
    columns = [column for column in TABLE_COLUMNS if column in result.columns]
    st.dataframe(
        result[columns].style.format({"p_value": format_p_value}),
        use_container_width=True,
        hide_index=True,
        column_config={
            "query": "Query",
            "source": "Source",
            "term_id": "Term ID",
            "term_name": "Term",
            "p_value": "Adjusted p-value",
            "term_size": "Term size",
            "intersection_size": "Overlap size",
            "intersection": "Overlap (click to expand)",
        },
    )


def render_results(result: Enrichment, file_name: str, top_n: int = 10, capped: bool = True) -> None:
    """
    Render the results section: table, Manhattan plot and bar chart tabs plus download links.

    :param result: Finished enrichment
    :param file_name: Base name for downloads
    :param top_n: Number of terms in the bar chart
    :param capped: Cap -log10(p) at 16 in the Manhattan plot
    """
    logger.info(f"Rendering results for file: {file_name}")
    df = result.to_dataframe()
    st.divider()
    st.subheader(file_name)

    background = result.background_gene_set
    st.caption(
        f"{result.gene_set.size} genes, "
        f"{background.size if background else 'annotated'} background, "
        f"g:Profiler {result.version or 'unknown version'}"
    )
    if result.failed_genes:
        st.warning(f"{len(result.failed_genes)} genes not recognised by g:Profiler: {', '.join(result.failed_genes[:20])}")

    if df.empty:
        st.warning("⚠️ No enrichment results found.")
        return

    table, manhattan, bar = st.tabs(["Results", "Manhattan plot", "Bar chart"])
    with table:
        render_table(df)
    with manhattan:
        st.plotly_chart(gostplot(df, capped=capped), use_container_width=True, key=f"gostplot_{file_name}")
    with bar:
        st.plotly_chart(bar_chart(df, top_n), use_container_width=True, key=f"barchart_{file_name}")

    st.markdown(
        f'Download results as {download_link(result.to_csv(), file_name, "csv")}, '
        f'{download_link(result.to_tsv(), file_name, "tsv")}, '
        f'{download_link(result.to_json(), file_name, "json")}',
        unsafe_allow_html=True,
    )
