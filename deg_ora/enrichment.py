import json
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from deg_ora.background_gene_set import BackgroundGeneSet
from deg_ora.config import GostConfig
from deg_ora.gene_set import GeneSet
from deg_ora.gprofiler_client import GostResponse, GProfilerClient

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "query",
    "significant",
    "p_value",
    "-log10(p_value)",
    "term_size",
    "query_size",
    "intersection_size",
    "precision",
    "recall",
    "term_id",
    "source",
    "term_name",
    "effective_domain_size",
    "source_order",
    "parents",
    "intersection",
    "evidence_codes",
]


def format_term_label(term_id: str, term_name: str) -> str:
    """
    Format a term for plot labels and tables.

    Args:
        term_id: Native identifier (e.g., "GO:0006954")
        term_name: Term name (e.g., "inflammatory response")

    Returns:
        Label such as "GO:0006954 inflammatory response"
    """
    if not term_id:
        return term_name
    if not term_name or term_name == term_id:
        return term_id
    return f"{term_id} {term_name}"


def neg_log10(p_value: float) -> float:
    return -math.log10(p_value) if p_value and p_value > 0 else 0.0


def queries_for(gene_set: GeneSet, direction: str) -> List[Tuple[str, GeneSet]]:
    """
    Gene lists to submit for the requested direction mode.

    Args:
        gene_set: The filtered DEG set
        direction: "combined", "split" or "all"

    Returns:
        (query name, gene set) pairs in submission order
    """
    if direction == "combined":
        return [("all", gene_set)]
    if direction == "split":
        return [("up", gene_set.up()), ("down", gene_set.down())]
    if direction == "all":
        return [("all", gene_set), ("up", gene_set.up()), ("down", gene_set.down())]
    raise ValueError(f"Unsupported direction: {direction}")


class Enrichment:
    """
    g:Profiler over-representation results for a DEG set against a background.
    """

    def __init__(
        self,
        gene_set: GeneSet,
        background_gene_set: Optional[BackgroundGeneSet] = None,
        gost_config: Optional[GostConfig] = None,
        direction: str = "combined",
        client: Optional[GProfilerClient] = None,
        name: str = None,
    ):
        """
        Initialize and run the enrichment query.

        Args:
            gene_set: Filtered DEG set
            background_gene_set: Custom background, or None for the annotated domain
            gost_config: g:GOSt query parameters
            direction: Which gene lists to submit ("combined", "split" or "all")
            client: g:Profiler client, built from gost_config when omitted
            name: Run name
        """
        self.gene_set = gene_set
        self.background_gene_set = background_gene_set
        self.gost_config = gost_config or GostConfig()
        self.direction = direction
        self.client = client or GProfilerClient(self.gost_config)
        self.name = (
            name
            if name
            else f"{gene_set.name}_{self.gost_config.organism}_{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
        )
        self.responses: Dict[str, GostResponse] = {}
        self.missing_from_background: List[str] = []
        self._results: List[Dict[str, Any]] = self._compute_enrichment()

    @property
    def results(self) -> List[Dict[str, Any]]:
        """
        Getter for _results.

        Returns:
            A list containing dictionaries of enriched terms
        """
        return self._results

    def _compute_enrichment(self) -> List[Dict[str, Any]]:
        """
        Submit each gene list and merge the returned terms.

        Returns:
            Terms from all queries, tagged with their query name and sorted by
            query then p-value
        """
        background = self.background_gene_set.genes if self.background_gene_set is not None else None
        if self.background_gene_set is not None:
            self.missing_from_background = self.background_gene_set.missing_from(self.gene_set.genes)

        results: List[Dict[str, Any]] = []
        for query_name, query_set in queries_for(self.gene_set, self.direction):
            if not query_set.genes:
                logger.warning(f"No genes in '{query_name}' query; skipping g:Profiler request")
                continue
            response = self.client.profile(query_set.genes, background=background)
            self.responses[query_name] = response
            for term in response.terms:
                results.append({**term, "query": query_name})

        if not results:
            logger.warning(f"No enriched terms for {self.gene_set.name}")
        order = {name: i for i, (name, _) in enumerate(queries_for(self.gene_set, self.direction))}
        results.sort(key=lambda term: (order.get(term["query"], 0), term.get("p_value", 1.0)))
        return results

    @property
    def failed_genes(self) -> List[str]:
        failed: List[str] = []
        for response in self.responses.values():
            failed.extend(gene for gene in response.failed if gene not in failed)
        return failed

    @property
    def ambiguous_genes(self) -> List[str]:
        ambiguous: List[str] = []
        for response in self.responses.values():
            ambiguous.extend(gene for gene in response.ambiguous if gene not in ambiguous)
        return ambiguous

    @property
    def version(self) -> str:
        versions = {response.version for response in self.responses.values() if response.version}
        return ", ".join(sorted(versions))

    def to_dataframe(self) -> pd.DataFrame:
        """Return the enriched terms as a pandas dataframe with string-joined list columns."""
        rows = []
        for term in self.results:
            p_value = term.get("p_value", 1.0)
            rows.append(
                {
                    "query": term.get("query", ""),
                    "significant": term.get("significant", True),
                    "p_value": p_value,
                    "-log10(p_value)": neg_log10(p_value),
                    "term_size": term.get("term_size"),
                    "query_size": term.get("query_size"),
                    "intersection_size": term.get("intersection_size"),
                    "precision": term.get("precision"),
                    "recall": term.get("recall"),
                    "term_id": term.get("native", ""),
                    "source": term.get("source", ""),
                    "term_name": term.get("name", ""),
                    "effective_domain_size": term.get("effective_domain_size"),
                    "source_order": term.get("source_order"),
                    "parents": ",".join(term.get("parents") or []),
                    "intersection": ",".join(term.get("intersection_genes") or []),
                    "evidence_codes": ",".join(
                        " ".join(codes) for codes in term.get("evidence_codes") or []
                    ),
                }
            )
        return pd.DataFrame(rows, columns=RESULT_COLUMNS)

    def to_csv(self) -> str:
        """Return the enrichment results as a CSV table."""
        return self.to_dataframe().to_csv(index=False)

    def to_tsv(self) -> str:
        """Return the enrichment results as a TSV spreadsheet."""
        return self.to_dataframe().to_csv(sep="\t", index=False)

    def to_json(self) -> str:
        """Return the enrichment results as a JSON string."""
        return json.dumps(self.results, indent=4, separators=(",", ": "))

    def to_snapshot(self) -> Dict[str, Any]:
        """Return the input parameters, sizes and enrichment results as a dict."""
        return {
            "name": self.name,
            "input_gene_set": list(self.gene_set.genes),
            "input_size": self.gene_set.size,
            "filter": self.gene_set.summary(),
            "background": self.background_gene_set.name if self.background_gene_set else None,
            "background_size": self.background_gene_set.size if self.background_gene_set else None,
            "missing_from_background": list(self.missing_from_background),
            "direction": self.direction,
            "parameters": {
                key: value
                for key, value in vars(self.gost_config).items()
                if key not in ("user_agent",)
            },
            "gprofiler_version": self.version,
            "failed_genes": self.failed_genes,
            "ambiguous_genes": self.ambiguous_genes,
            "results": self.results,
        }
