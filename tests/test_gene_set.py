import pandas as pd
import pytest

from deg_ora.config import FilterConfig
from deg_ora.errors import InputTableError
from deg_ora.gene_set import GeneSet, clean_symbols, read_gene_table


def test_filter_keeps_significant_unique_genes(de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig(), name="treated")

    assert gene_set.genes == ["TP53", "MDM2", "BBC3"]
    assert gene_set.size == 3
    assert len(set(gene_set.genes)) == gene_set.size


def test_filter_records_each_stage(de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig())

    assert gene_set.stages == {
        "input": 9,
        "with_symbol": 8,
        "padj": 6,
        "log2fc": 4,
        "unique": 3,
    }
    assert gene_set.validation["duplicates"] == ["TP53"]
    assert gene_set.validation["non_valid"] == ["5"]


def test_first_duplicate_row_wins(de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig())

    tp53 = gene_set.table[gene_set.table["gene"] == "TP53"]
    assert len(tp53) == 1
    assert tp53["log2FoldChange"].iloc[0] == 2.5


def test_thresholds_are_strict(de_table):
    # GADD45A sits exactly on |log2FC| = 1 and BBC3 just below padj 0.05
    gene_set = GeneSet.from_de_table(de_table, FilterConfig(padj_threshold=0.049))

    assert "GADD45A" not in gene_set.genes
    assert "BBC3" not in gene_set.genes


def test_custom_thresholds(de_table):
    gene_set = GeneSet.from_de_table(
        de_table, FilterConfig(padj_threshold=0.5, log2fc_threshold=0.0)
    )

    assert gene_set.genes == ["TP53", "MDM2", "CDKN1A", "BAX", "GADD45A", "BBC3"]


def test_up_and_down_subsets(de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig(), name="treated")

    assert gene_set.up().genes == ["TP53", "BBC3"]
    assert gene_set.down().genes == ["MDM2"]
    assert gene_set.up().name == "treated_up"


def test_subset_stages_end_with_subset_size(de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig())

    up = gene_set.up()
    down = gene_set.down()

    assert up.summary()["stages"]["up"] == up.size == 2
    assert down.summary()["stages"]["down"] == down.size == 1
    assert up.summary()["stages"]["unique"] == 3
    assert "up" not in gene_set.stages


def test_summary_counts(de_table):
    summary = GeneSet.from_de_table(de_table, FilterConfig()).summary()

    assert summary["size"] == 3
    assert summary["up"] == 2
    assert summary["down"] == 1
    assert summary["non_valid"] == 1


def test_missing_column_raises(de_table):
    with pytest.raises(InputTableError, match="padj"):
        GeneSet.from_de_table(de_table.drop(columns=["padj"]), FilterConfig())


def test_non_numeric_values_are_dropped():
    df = pd.DataFrame(
        {"gene": ["A", "B"], "log2FoldChange": ["3.1", "oops"], "padj": ["0.001", "0.001"]}
    )

    assert GeneSet.from_de_table(df, FilterConfig()).genes == ["A"]


def test_empty_result_is_allowed(de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig(log2fc_threshold=10))

    assert gene_set.size == 0
    assert gene_set.up().genes == []


def test_from_csv_uses_file_stem(de_csv):
    gene_set = GeneSet.from_csv(de_csv, FilterConfig())

    assert gene_set.name == "treated_vs_control"
    assert gene_set.genes == ["TP53", "MDM2", "BBC3"]


def test_read_gene_table_uses_r_row_names(tmp_path):
    path = tmp_path / "deseq2.csv"
    path.write_text('"","log2FoldChange","padj"\n"TP53",2.5,0.001\n"MDM2",-1.5,NA\n')

    df = read_gene_table(path, "gene")

    assert df["gene"].tolist() == ["TP53", "MDM2"]
    assert pd.isna(df["padj"].iloc[1])


def test_read_gene_table_missing_column(tmp_path):
    path = tmp_path / "counts.csv"
    path.write_text("symbol,count\nTP53,10\n")

    with pytest.raises(InputTableError, match="'gene' not found"):
        read_gene_table(path, "gene")


def test_read_gene_table_missing_file(tmp_path):
    with pytest.raises(InputTableError, match="not found"):
        read_gene_table(tmp_path / "nope.csv", "gene")


def test_clean_symbols():
    cleaned = clean_symbols(pd.Series([" TP53", "MDM2\t", "", None, "  "]))

    assert cleaned.tolist()[:2] == ["TP53", "MDM2"]
    assert cleaned.isna().tolist() == [False, False, True, True, True]


def test_to_csv_writes_filtered_rows(tmp_path, de_table):
    gene_set = GeneSet.from_de_table(de_table, FilterConfig())

    path = gene_set.to_csv(tmp_path / "filtered.csv")

    assert pd.read_csv(path)["gene"].tolist() == ["TP53", "MDM2", "BBC3"]
