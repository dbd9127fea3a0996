from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

import typer
import pandas as pd

from deg_ora.background_gene_set import BackgroundGeneSet
from deg_ora.config import OutputConfig, RunConfig, load_config, override
from deg_ora.enrichment import Enrichment
from deg_ora.errors import DegOraError, InputTableError
from deg_ora.gene_set import GeneSet
from deg_ora.gprofiler_client import GProfilerClient
from deg_ora.report import prepare_output_dir, write_plots, write_report

# Set up logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Over-representation analysis of a DE gene list with g:Profiler",
    add_completion=False,
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def run_enrichment(
    config: RunConfig, client: Optional[GProfilerClient] = None
) -> Tuple[Path, Dict[str, Path], Enrichment]:
    """Run the filter, the g:Profiler query and the report for a validated config."""
    if not config.de_path:
        raise DegOraError("No DE results table given; pass --de or set de_path in the config.")

    name = config.run_name
    gene_set = GeneSet.from_csv(config.de_path, config.filter, name=name)
    summary = gene_set.summary()
    logger.info(f"Gene set {name}: {gene_set.size} genes ({summary['up']} up, {summary['down']} down)")

    background_gene_set = None
    if config.background_path:
        logger.info(f"Loading background gene set: {config.background_path}")
        background_gene_set = BackgroundGeneSet(
            config.background_path, gene_column=config.filter.background_column
        )
        logger.info(f"Background {background_gene_set.name}: {background_gene_set.size} genes")
    else:
        logger.info("No background given; using all annotated genes as the domain")

    output_dir = prepare_output_dir(config.output, name)
    enrichment = Enrichment(
        gene_set,
        background_gene_set,
        gost_config=config.gost,
        direction=config.direction,
        client=client,
        name=name,
    )
    artifacts = write_report(enrichment, gene_set, output_dir, config.output, name)
    return output_dir, artifacts, enrichment


def _build_config(
    config_path: Optional[Path],
    de_path: Optional[Path],
    background_path: Optional[Path],
    gene_column: Optional[str],
    background_gene_column: Optional[str],
    padj_column: Optional[str],
    log2fc_column: Optional[str],
    padj_threshold: Optional[float],
    log2fc_threshold: Optional[float],
) -> RunConfig:
    config = load_config(config_path)
    if de_path is not None:
        config.de_path = str(de_path)
    if background_path is not None:
        config.background_path = str(background_path)
    config.filter = override(
        config.filter,
        gene_column=gene_column,
        background_gene_column=background_gene_column,
        padj_column=padj_column,
        log2fc_column=log2fc_column,
        padj_threshold=padj_threshold,
        log2fc_threshold=log2fc_threshold,
    )
    return config


def _fail(exc: Exception) -> None:
    typer.echo(f"❌ Error: {exc}", err=True)
    raise typer.Exit(code=1)


CONFIG_OPTION = typer.Option(
    None, "--config", "-c", exists=True, dir_okay=False, help="YAML run configuration."
)
DE_OPTION = typer.Option(
    None, "--de", "-d", exists=True, dir_okay=False, help="DE results CSV (one row per gene)."
)
BACKGROUND_OPTION = typer.Option(
    None,
    "--background",
    "-b",
    exists=True,
    dir_okay=False,
    help="Background CSV (all genes tested). Omit to use all annotated genes.",
    show_default=False,
)
GENE_COLUMN_OPTION = typer.Option(None, "--gene-column", help="Gene symbol column. [default: gene]")
BG_COLUMN_OPTION = typer.Option(
    None, "--background-gene-column", help="Gene symbol column of the background CSV."
)
PADJ_COLUMN_OPTION = typer.Option(None, "--padj-column", help="Adjusted p-value column. [default: padj]")
LFC_COLUMN_OPTION = typer.Option(
    None, "--log2fc-column", help="log2 fold change column. [default: log2FoldChange]"
)
PADJ_OPTION = typer.Option(None, "--padj", help="Keep genes with padj below this. [default: 0.05]")
LFC_OPTION = typer.Option(
    None, "--log2fc", help="Keep genes with |log2FC| above this. [default: 1.0]"
)


@app.command(help="Filter the DE table, query g:Profiler and write the report.")
def run(
    config_path: Optional[Path] = CONFIG_OPTION,
    de_path: Optional[Path] = DE_OPTION,
    background_path: Optional[Path] = BACKGROUND_OPTION,
    gene_column: Optional[str] = GENE_COLUMN_OPTION,
    background_gene_column: Optional[str] = BG_COLUMN_OPTION,
    padj_column: Optional[str] = PADJ_COLUMN_OPTION,
    log2fc_column: Optional[str] = LFC_COLUMN_OPTION,
    padj_threshold: Optional[float] = PADJ_OPTION,
    log2fc_threshold: Optional[float] = LFC_OPTION,
    organism: Optional[str] = typer.Option(None, "--organism", help="g:Profiler organism id. [default: hsapiens]"),
    sources: Optional[List[str]] = typer.Option(
        None, "--source", "-s", help="Annotation source; repeat for several. [default: GO:BP GO:MF GO:CC KEGG REAC WP]"
    ),
    user_threshold: Optional[float] = typer.Option(
        None, "--threshold", "-t", help="Adjusted p-value threshold for terms. [default: 0.05]"
    ),
    correction: Optional[str] = typer.Option(
        None, "--correction", help="Multiple testing correction: g_SCS, fdr or bonferroni. [default: g_SCS]"
    ),
    direction: Optional[str] = typer.Option(
        None, "--direction", help="Queries to run: combined, split (up/down) or all. [default: combined]"
    ),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Output directory. [default: results]"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Run name used for file names."),
    top_n: Optional[int] = typer.Option(None, "--top", help="Terms highlighted in the static plot. [default: 10]"),
):
    """
    Run the over-representation analysis from the command line.
    """
    try:
        config = _build_config(
            config_path, de_path, background_path, gene_column, background_gene_column,
            padj_column, log2fc_column, padj_threshold, log2fc_threshold,
        )
        if direction is not None:
            config.direction = direction
        config.gost = override(
            config.gost,
            organism=organism,
            sources=list(sources) if sources else None,
            user_threshold=user_threshold,
            significance_threshold_method=correction,
        )
        config.output = override(
            config.output,
            output_dir=str(output_dir) if output_dir is not None else None,
            name=name,
            top_n=top_n,
        )
        config.validate()
    except DegOraError as exc:
        _fail(exc)

    typer.echo(f"DE table: {config.de_path}")
    typer.echo(f"Background: {config.background_path or 'annotated genes'}")
    typer.echo(
        f"Filter: {config.filter.padj_column} < {config.filter.padj_threshold}, "
        f"|{config.filter.log2fc_column}| > {config.filter.log2fc_threshold}"
    )
    typer.echo(f"Organism: {config.gost.organism}")
    typer.echo(f"Sources: {', '.join(config.gost.sources)}")
    typer.echo(f"Correction: {config.gost.significance_threshold_method} (threshold {config.gost.user_threshold})")
    typer.echo(f"Direction: {config.direction}")
    typer.echo("")

    try:
        out_dir, artifacts, enrichment = run_enrichment(config)
    except (DegOraError, ValueError) as exc:
        _fail(exc)

    typer.echo(f"Enriched terms: {len(enrichment.results)}")
    for artifact, path in artifacts.items():
        typer.echo(f"   - {artifact}: {path.name}")
    typer.echo(f"✅ Analysis completed successfully! Results saved to {out_dir}")


@app.command("filter", help="Apply the DEG filter only and write the filtered table.")
def filter_command(
    config_path: Optional[Path] = CONFIG_OPTION,
    de_path: Optional[Path] = DE_OPTION,
    gene_column: Optional[str] = GENE_COLUMN_OPTION,
    padj_column: Optional[str] = PADJ_COLUMN_OPTION,
    log2fc_column: Optional[str] = LFC_COLUMN_OPTION,
    padj_threshold: Optional[float] = PADJ_OPTION,
    log2fc_threshold: Optional[float] = LFC_OPTION,
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", dir_okay=False, help="Output CSV. [default: <name>_deg_filtered.csv]"
    ),
):
    try:
        config = _build_config(
            config_path, de_path, None, gene_column, None,
            padj_column, log2fc_column, padj_threshold, log2fc_threshold,
        ).validate()
        if not config.de_path:
            raise DegOraError("No DE results table given; pass --de or set de_path in the config.")
        gene_set = GeneSet.from_csv(config.de_path, config.filter, name=config.run_name)
    except DegOraError as exc:
        _fail(exc)

    summary = gene_set.summary()
    for stage, count in summary["stages"].items():
        typer.echo(f"{stage:>12}: {count}")
    typer.echo(f"{'up':>12}: {summary['up']}")
    typer.echo(f"{'down':>12}: {summary['down']}")
    if summary["duplicates"]:
        typer.echo(f"⚠️  {len(summary['duplicates'])} duplicated symbols collapsed")
    path = gene_set.to_csv(output or Path(f"{config.run_name}_deg_filtered.csv"))
    typer.echo(f"✅ Saved {gene_set.size} genes to {path}")


@app.command(help="Re-render both plots from a saved results CSV.")
def plot(
    results: Path = typer.Argument(..., exists=True, dir_okay=False, help="A *_gost_results.csv file."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="[default: next to the results]"),
    top_n: int = typer.Option(10, "--top", help="Terms highlighted in the static plot."),
    capped: bool = typer.Option(True, "--capped/--no-capped", help="Cap -log10(p) at 16."),
):
    name = results.stem.replace("_gost_results", "")
    target = output_dir or results.parent
    config = OutputConfig(top_n=top_n, capped=capped)
    try:
        df = pd.read_csv(results)
        target.mkdir(parents=True, exist_ok=True)
        artifacts = write_plots(df, target, name, config)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        _fail(InputTableError(f"Cannot read results table {results}: {exc}"))
    except ValueError as exc:
        _fail(exc)
    if not artifacts:
        typer.echo("⚠️  No enriched terms in the results; nothing to plot", err=True)
        raise typer.Exit(code=1)
    for artifact, path in artifacts.items():
        typer.echo(f"   - {artifact}: {path}")


if __name__ == "__main__":
    app()
