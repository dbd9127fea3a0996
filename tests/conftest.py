import copy

import numpy as np
import pandas as pd
import pytest

from deg_ora.gprofiler_client import GostResponse, attach_intersections


@pytest.fixture
def de_table():
    """DE results with a padded symbol, a duplicate, a blank symbol and NA padj."""
    return pd.DataFrame(
        {
            "gene": ["TP53 ", "MDM2", "CDKN1A", "BAX", "TP53", "  ", "GADD45A", "FAS", "BBC3"],
            "baseMean": [850.2, 420.0, 1300.5, 95.1, 850.2, 12.0, 77.3, 240.9, 64.0],
            "log2FoldChange": [2.5, -1.5, 3.0, 0.5, 2.0, 4.0, 1.0, -2.2, 1.2],
            "pvalue": [1e-5, 1e-3, 0.05, 1e-5, 2e-5, 1e-5, 1e-3, np.nan, 4e-3],
            "padj": [0.001, 0.01, 0.2, 0.001, 0.002, 0.001, 0.01, np.nan, 0.049],
        }
    )


@pytest.fixture
def de_csv(tmp_path, de_table):
    path = tmp_path / "treated_vs_control.csv"
    de_table.to_csv(path, index=False)
    return path


@pytest.fixture
def background_csv(tmp_path):
    path = tmp_path / "all_genes.csv"
    pd.DataFrame(
        {"gene": ["TP53", "MDM2", "CDKN1A", "BAX", " BBC3", "TP53", None], "baseMean": range(7)}
    ).to_csv(path, index=False)
    return path


@pytest.fixture
def gost_body():
    """A g:GOSt profile response for the query TP53, MDM2, BBC3."""
    return {
        "result": [
            {
                "native": "REAC:R-HSA-69563",
                "name": "p53-Dependent G1 DNA Damage Response",
                "p_value": 2e-3,
                "significant": True,
                "description": "p53-Dependent G1 DNA Damage Response",
                "term_size": 64,
                "query_size": 3,
                "intersection_size": 2,
                "effective_domain_size": 5,
                "precision": 0.667,
                "recall": 0.031,
                "query": "query_1",
                "parents": ["REAC:R-HSA-69620"],
                "intersections": [["TAS"], ["TAS"], []],
                "source": "REAC",
                "group_id": 2,
                "source_order": 900,
            },
            {
                "native": "GO:0006915",
                "name": "apoptotic process",
                "p_value": 1e-5,
                "significant": True,
                "description": "A programmed cell death process.",
                "term_size": 1800,
                "query_size": 3,
                "intersection_size": 2,
                "effective_domain_size": 5,
                "precision": 0.667,
                "recall": 0.001,
                "query": "query_1",
                "parents": ["GO:0008219", "GO:0012501"],
                "intersections": [["IDA"], [], ["IMP", "IEA"]],
                "source": "GO:BP",
                "group_id": 1,
                "source_order": 2200,
            },
        ],
        "meta": {
            "genes_metadata": {
                "query": {
                    "query_1": {
                        "ensgs": ["ENSG00000141510", "ENSG00000135679", "ENSG00000105327"],
                        "mapping": {
                            "TP53": ["ENSG00000141510"],
                            "MDM2": ["ENSG00000135679"],
                            "BBC3": ["ENSG00000105327"],
                        },
                    }
                },
                "failed": ["LINC9999"],
                "ambiguous": {},
            },
            "version": "e111_eg58_p18_f463989d",
        },
    }


class FakeClient:
    """Stands in for GProfilerClient and replays a canned response."""

    def __init__(self, body):
        self.body = body
        self.calls = []

    def profile(self, genes, background=None):
        self.calls.append((list(genes), background))
        terms = copy.deepcopy(self.body["result"])
        attach_intersections(terms, self.body["meta"]["genes_metadata"])
        return GostResponse(terms=terms, meta=self.body["meta"])


@pytest.fixture
def fake_client(gost_body):
    return FakeClient(gost_body)


@pytest.fixture
def results_table():
    return pd.DataFrame(
        {
            "query": ["all", "all", "all", "all"],
            "source": ["GO:BP", "GO:BP", "KEGG", "CUSTOM"],
            "term_id": ["GO:0006915", "GO:0006974", "KEGG:04115", "X:1"],
            "term_name": ["apoptotic process", "DNA damage response", "p53 signaling pathway", "custom"],
            "p_value": [1e-20, 1e-4, 3e-3, 0.04],
            "term_size": [1800, 900, 73, 10],
            "intersection_size": [12, 8, 5, 2],
            "source_order": [2200, 2500, 100, 1],
        }
    )
