from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from deg_ora.config import GostConfig
from deg_ora.errors import GProfilerError

logger = logging.getLogger(__name__)

PROFILE_PATH = "/api/gost/profile/"


@dataclass
class GostResponse:
    """Parsed body of a g:GOSt profile response."""

    terms: List[Dict[str, Any]]
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def genes_metadata(self) -> Dict[str, Any]:
        return self.meta.get("genes_metadata") or {}

    @property
    def failed(self) -> List[str]:
        """Query genes g:Profiler could not map to any identifier."""
        return list(self.genes_metadata.get("failed") or [])

    @property
    def ambiguous(self) -> List[str]:
        """Query genes that mapped to more than one identifier."""
        ambiguous = self.genes_metadata.get("ambiguous") or {}
        if isinstance(ambiguous, dict):
            return sorted(ambiguous)
        return list(ambiguous)

    @property
    def version(self) -> str:
        return str(self.meta.get("version", ""))


def build_payload(
    genes: Sequence[str], gost_config: GostConfig, background: Optional[Sequence[str]] = None
) -> Dict[str, Any]:
    """
    Build the JSON body for a g:GOSt profile request.

    A supplied background switches the statistical domain to ``custom``;
    otherwise all annotated genes of the organism are used.
    """
    payload: Dict[str, Any] = {
        "organism": gost_config.organism,
        "query": list(genes),
        "sources": list(gost_config.sources),
        "user_threshold": gost_config.user_threshold,
        "all_results": gost_config.all_results,
        "ordered": gost_config.ordered,
        "no_iea": gost_config.no_iea,
        "combined": False,
        "measure_underrepresentation": gost_config.measure_underrepresentation,
        "no_evidences": gost_config.no_evidences,
        "numeric_ns": gost_config.numeric_ns,
        "significance_threshold_method": gost_config.significance_threshold_method,
        "domain_scope": "annotated",
    }
    if background is not None:
        payload["domain_scope"] = "custom"
        payload["background"] = list(background)
    return payload


def attach_intersections(terms: List[Dict[str, Any]], genes_metadata: Dict[str, Any]) -> None:
    """
    Translate positional evidence lists into input gene names.

    g:GOSt reports ``intersections`` as one evidence-code list per mapped
    identifier of the query, in the order of ``genes_metadata.query.<q>.ensgs``.
    Each term gains ``intersection_genes`` and ``evidence_codes`` (one list of
    codes per intersecting gene).
    """
    queries = genes_metadata.get("query") or {}
    reverse_maps: Dict[str, Dict[str, List[str]]] = {}
    for query_name, query_meta in queries.items():
        reverse: Dict[str, List[str]] = {}
        for input_gene, ensgs in (query_meta.get("mapping") or {}).items():
            for ensg in ensgs:
                reverse.setdefault(ensg, []).append(input_gene)
        reverse_maps[query_name] = reverse

    for term in terms:
        query_name = term.get("query", "")
        ensgs = (queries.get(query_name) or {}).get("ensgs") or []
        reverse = reverse_maps.get(query_name, {})
        genes: List[str] = []
        codes: List[List[str]] = []
        for position, evidence in enumerate(term.get("intersections") or []):
            if not evidence or position >= len(ensgs):
                continue
            for gene in reverse.get(ensgs[position], [ensgs[position]]):
                if gene not in genes:
                    genes.append(gene)
                    codes.append(list(evidence))
        term["intersection_genes"] = genes
        term["evidence_codes"] = codes


class GProfilerClient:
    """
    Thin client for the g:Profiler g:GOSt REST endpoint.

    One call to :meth:`profile` is one synchronous HTTP request.
    """

    def __init__(self, gost_config: Optional[GostConfig] = None) -> None:
        self.gost_config = gost_config or GostConfig()
        self.url = self.gost_config.base_url.rstrip("/") + PROFILE_PATH

    def profile(
        self, genes: Sequence[str], background: Optional[Sequence[str]] = None
    ) -> GostResponse:
        """
        Run g:GOSt over-representation analysis for one gene list.

        :param genes: Query gene symbols
        :param background: Custom domain; ``None`` uses annotated genes
        :returns: Parsed response
        :raises ValueError: If the query is empty
        :raises GProfilerError: On transport errors, non-2xx status or a non-JSON body
        """
        if not genes:
            raise ValueError("Cannot query g:Profiler with an empty gene list")

        payload = build_payload(genes, self.gost_config, background)
        logger.info(
            f"Querying g:Profiler ({self.gost_config.organism}, "
            f"{', '.join(self.gost_config.sources)}) with {len(payload['query'])} genes, "
            f"domain_scope={payload['domain_scope']}"
        )
        start = time.perf_counter()
        try:
            resp = requests.post(
                self.url,
                json=payload,
                headers={"User-Agent": self.gost_config.user_agent},
                timeout=self.gost_config.timeout,
            )
        except requests.RequestException as exc:
            raise GProfilerError(f"g:Profiler request failed: {exc}") from exc
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = None
            detail = f": {body['message']}" if isinstance(body, dict) and body.get("message") else ""
            raise GProfilerError(
                f"g:Profiler returned HTTP {resp.status_code}{detail}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise GProfilerError("g:Profiler returned a non-JSON response") from exc
        if not isinstance(data, dict) or not isinstance(data.get("result", []), list):
            raise GProfilerError("g:Profiler response has no result list")

        response = GostResponse(terms=list(data.get("result") or []), meta=data.get("meta") or {})
        if not self.gost_config.no_evidences:
            attach_intersections(response.terms, response.genes_metadata)
        logger.info(f"g:Profiler returned {len(response.terms)} terms in {elapsed_ms:.0f} ms")
        if response.failed:
            logger.warning(f"{len(response.failed)} genes could not be mapped: {response.failed[:10]}")
        if response.ambiguous:
            logger.warning(f"{len(response.ambiguous)} genes are ambiguous: {response.ambiguous[:10]}")
        return response
