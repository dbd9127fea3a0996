import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from deg_ora.config import OutputConfig
from deg_ora.enrichment import Enrichment
from deg_ora.gene_set import GeneSet
from deg_ora.plotting import publish_gostplot, write_gostplot_html

logger = logging.getLogger(__name__)


def prepare_output_dir(output_config: OutputConfig, name: str, now: Optional[datetime] = None) -> Path:
    """
    Create the folder a run writes into.

    With ``timestamped`` set, each run gets its own ``<name>_<YYYYmmdd_HHMMSS>``
    subfolder of ``output_dir``.
    """
    output_dir = Path(output_config.output_dir)
    if output_config.timestamped:
        timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        output_dir = output_dir / f"{name}_{timestamp}"
    output_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Writing results to {output_dir}")
    return output_dir


def write_plots(df, output_dir: Path, name: str, output_config: OutputConfig) -> Dict[str, Path]:
    """Write the interactive and static Manhattan plots; nothing is written for an empty table."""
    if df.empty:
        logger.warning("No enriched terms; skipping plots")
        return {}
    return {
        "gostplot_html": write_gostplot_html(
            df,
            output_dir / f"{name}_gostplot.html",
            capped=output_config.capped,
            include_plotlyjs=output_config.include_plotlyjs,
        ),
        "gostplot_png": publish_gostplot(
            df,
            output_dir / f"{name}_gostplot.png",
            top_n=output_config.top_n,
            capped=output_config.capped,
            dpi=output_config.dpi,
        ),
    }


def write_report(
    enrichment: Enrichment, gene_set: GeneSet, output_dir: Path, output_config: OutputConfig, name: str
) -> Dict[str, Path]:
    """
    Write every artifact of a run.

    Returns:
        Mapping of artifact name to the written path
    """
    artifacts: Dict[str, Path] = {}
    artifacts["deg_filtered"] = gene_set.to_csv(output_dir / f"{name}_deg_filtered.csv")

    df = enrichment.to_dataframe()
    results_file = output_dir / f"{name}_gost_results.csv"
    df.to_csv(results_file, index=False)
    logger.info(f"Saved {len(df)} enriched terms to {results_file}")
    artifacts["results"] = results_file

    snapshot = enrichment.to_snapshot()
    snapshot["timestamp"] = datetime.now().isoformat()
    snapshot_file = output_dir / f"{name}_snapshot.json"
    with open(snapshot_file, "w") as f:
        json.dump(snapshot, f, indent=2, default=str)
    logger.info(f"Saved metadata to {snapshot_file}")
    artifacts["snapshot"] = snapshot_file

    artifacts.update(write_plots(df, output_dir, name, output_config))
    return artifacts
