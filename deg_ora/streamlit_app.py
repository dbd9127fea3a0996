import logging

import streamlit as st
from streamlit import session_state as state

from deg_ora.background_gene_set import BackgroundGeneSet
from deg_ora.config import DEFAULT_SOURCES, DIRECTIONS, SIGNIFICANCE_METHODS, FilterConfig, GostConfig
from deg_ora.enrichment import Enrichment
from deg_ora.errors import DegOraError
from deg_ora.gene_set import GeneSet
from deg_ora.ui.rendering import render_filter_summary, render_results
from deg_ora.ui.utils import run_key, save_upload, upload_dir

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="DEG enrichment", layout="wide", initial_sidebar_state="expanded"
)

EXTRA_SOURCES = ["TF", "MIRNA", "HPA", "CORUM", "HP"]


def _ensure_base_state() -> None:
    if "enrich" not in state:
        state.enrich = None
    if "gene_set" not in state:
        state.gene_set = None
    if "upload_dir" not in state:
        state.upload_dir = upload_dir()
    if "run_key" not in state:
        state.run_key = None


def sidebar() -> tuple:
    """Collect inputs and parameters; returns (de_file, bg_file, FilterConfig, GostConfig, direction, top_n)."""
    st.sidebar.title("DEG enrichment")
    st.sidebar.write(
        "Over-representation analysis of a differential expression gene list with g:Profiler."
    )
    de_file = st.sidebar.file_uploader("DE results (CSV)", type=["csv"])
    bg_file = st.sidebar.file_uploader("Background genes (CSV, optional)", type=["csv"])

    with st.sidebar.expander("Columns"):
        gene_column = st.text_input("Gene symbol column", "gene")
        padj_column = st.text_input("Adjusted p-value column", "padj")
        log2fc_column = st.text_input("log2 fold change column", "log2FoldChange")
        bg_column = st.text_input("Background gene column", "", help="Empty: same as gene column")

    with st.sidebar.expander("DEG filter", expanded=True):
        padj_threshold = st.number_input("padj <", 0.0001, 1.0, 0.05, format="%.4f")
        log2fc_threshold = st.number_input("|log2FC| >", 0.0, 20.0, 1.0, step=0.25)

    with st.sidebar.expander("g:Profiler", expanded=True):
        organism = st.text_input("Organism", "hsapiens")
        sources = st.multiselect("Sources", DEFAULT_SOURCES + EXTRA_SOURCES, DEFAULT_SOURCES)
        correction = st.selectbox("Correction", SIGNIFICANCE_METHODS)
        user_threshold = st.number_input("Term threshold", 0.0001, 1.0, 0.05, format="%.4f")
        direction = st.selectbox("Queries", DIRECTIONS)
        top_n = st.slider("Terms in bar chart", 5, 50, 10)

    filter_config = FilterConfig(
        gene_column=gene_column,
        padj_column=padj_column,
        log2fc_column=log2fc_column,
        padj_threshold=padj_threshold,
        log2fc_threshold=log2fc_threshold,
        background_gene_column=bg_column or None,
    )
    gost_config = GostConfig(
        organism=organism,
        sources=sources,
        user_threshold=user_threshold,
        significance_threshold_method=correction,
    )
    return de_file, bg_file, filter_config, gost_config, direction, top_n


def main() -> None:
    _ensure_base_state()
    de_file, bg_file, filter_config, gost_config, direction, top_n = sidebar()

    if de_file is None:
        st.info("Upload a DE results CSV to start.")
        return

    submit = st.sidebar.button("Run enrichment", type="primary", disabled=not gost_config.sources)
    key = run_key(de_file, bg_file, filter_config, gost_config, direction)
    if state.enrich is not None and key != state.run_key:
        logger.info("Inputs changed since the last run; clearing results.")
        state.enrich = None
    try:
        de_path = save_upload(de_file, state.upload_dir)
        state.gene_set = GeneSet.from_csv(de_path, filter_config)
        render_filter_summary(state.gene_set)

        if submit:
            background = None
            if bg_file is not None:
                background = BackgroundGeneSet(
                    save_upload(bg_file, state.upload_dir),
                    gene_column=filter_config.background_column,
                )
            with st.spinner("Querying g:Profiler..."):
                state.enrich = Enrichment(
                    state.gene_set, background, gost_config=gost_config, direction=direction
                )
            state.run_key = key
    except (DegOraError, ValueError) as exc:
        logger.exception("Enrichment failed")
        st.error(str(exc))
        return

    if state.enrich is not None:
        render_results(state.enrich, state.gene_set.name, top_n=top_n)


if __name__ == "__main__":
    main()
