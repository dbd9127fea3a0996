import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from deg_ora.config import FilterConfig
from deg_ora.errors import InputTableError

logger = logging.getLogger(__name__)

# Column names pandas gives the unnamed row-name column of an R write.csv file
ROW_NAME_COLUMNS = ("Unnamed: 0", "")


def read_gene_table(path: Union[str, Path], gene_column: str) -> pd.DataFrame:
    """
    Read a CSV exported by the upstream pipeline and make sure it has a gene column.

    If ``gene_column`` is absent but the first column is the unnamed row-name
    column R writes, that column is renamed to ``gene_column``.

    Args:
        path: Path to the CSV file
        gene_column: Name of the column holding gene symbols

    Returns:
        The table as a DataFrame
    """
    path = Path(path)
    try:
        df = pd.read_csv(path, na_values=["NA"], keep_default_na=True)
    except FileNotFoundError as exc:
        raise InputTableError(f"Input table not found: {path}") from exc
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise InputTableError(f"Could not parse {path}: {exc}") from exc

    if gene_column not in df.columns:
        first = df.columns[0] if len(df.columns) else None
        if first is not None and (first in ROW_NAME_COLUMNS or str(first).startswith("Unnamed: ")):
            logger.info(f"Using row-name column of {path.name} as '{gene_column}'")
            df = df.rename(columns={first: gene_column})
        else:
            raise InputTableError(
                f"Column '{gene_column}' not found in {path.name}; "
                f"available columns: {', '.join(map(str, df.columns))}"
            )
    return df


def clean_symbols(symbols: pd.Series) -> pd.Series:
    """Trim whitespace from gene symbols; NA and empty strings become NA."""
    cleaned = symbols.astype("string").str.strip()
    return cleaned.mask(cleaned.fillna("") == "")


class GeneSet:
    """
    A filtered list of differentially expressed genes together with their DE statistics.
    """

    def __init__(
        self,
        table: pd.DataFrame,
        gene_column: str,
        log2fc_column: str,
        name: str = "",
        validation: Optional[Dict[str, List[str]]] = None,
        stages: Optional[Dict[str, int]] = None,
    ) -> None:
        self.table = table.reset_index(drop=True)
        self.gene_column = gene_column
        self.log2fc_column = log2fc_column
        self.name = name
        self.genes: List[str] = self.table[gene_column].tolist()
        self.size: int = len(self.genes)
        self.validation = validation or {"duplicates": [], "non_valid": []}
        self.stages = stages or {}

    @classmethod
    def from_de_table(
        cls, df: pd.DataFrame, filter_config: FilterConfig, name: str = ""
    ) -> "GeneSet":
        """
        Filter a DE results table down to its significant, de-duplicated genes.

        Rows are kept when the trimmed symbol is non-empty, padj is below the
        threshold and the absolute log2 fold change exceeds its threshold. The
        first row of each symbol wins.

        Args:
            df: DE results table
            filter_config: Column names and thresholds
            name: Name of the gene set

        Returns:
            The filtered GeneSet
        """
        gene_col = filter_config.gene_column
        padj_col = filter_config.padj_column
        lfc_col = filter_config.log2fc_column
        for column in (gene_col, padj_col, lfc_col):
            if column not in df.columns:
                raise InputTableError(
                    f"Column '{column}' not found in DE table; "
                    f"available columns: {', '.join(map(str, df.columns))}"
                )

        table = df.copy()
        table[gene_col] = clean_symbols(table[gene_col])
        table[padj_col] = pd.to_numeric(table[padj_col], errors="coerce")
        table[lfc_col] = pd.to_numeric(table[lfc_col], errors="coerce")
        stages = {"input": len(table)}

        has_symbol = table[gene_col].notna()
        non_valid = [str(i) for i in table.index[~has_symbol]]
        table = table[has_symbol]
        stages["with_symbol"] = len(table)

        table = table[table[padj_col] < filter_config.padj_threshold]
        stages["padj"] = len(table)

        table = table[table[lfc_col].abs() > filter_config.log2fc_threshold]
        stages["log2fc"] = len(table)

        duplicated = table[gene_col].duplicated(keep="first")
        duplicates = sorted(set(table.loc[duplicated, gene_col].tolist()))
        table = table[~duplicated].copy()
        stages["unique"] = len(table)

        table[gene_col] = table[gene_col].astype(str)
        if duplicates:
            logger.warning(f"Dropped {int(duplicated.sum())} duplicate rows for {len(duplicates)} symbols")
        if non_valid:
            logger.warning(f"Dropped {len(non_valid)} rows without a gene symbol")
        logger.info(
            f"DEG filter: {stages['input']} rows -> {stages['unique']} genes "
            f"(padj < {filter_config.padj_threshold}, |log2FC| > {filter_config.log2fc_threshold})"
        )
        return cls(
            table,
            gene_col,
            lfc_col,
            name=name,
            validation={"duplicates": duplicates, "non_valid": non_valid},
            stages=stages,
        )

    @classmethod
    def from_csv(
        cls, path: Union[str, Path], filter_config: FilterConfig, name: str = ""
    ) -> "GeneSet":
        """Read a DE results CSV and filter it."""
        df = read_gene_table(path, filter_config.gene_column)
        return cls.from_de_table(df, filter_config, name=name or Path(path).stem)

    def _subset(self, mask: pd.Series, suffix: str) -> "GeneSet":
        subset = self.table[mask]
        return GeneSet(
            subset,
            self.gene_column,
            self.log2fc_column,
            name=f"{self.name}_{suffix}" if self.name else suffix,
            validation=self.validation,
            stages={**self.stages, suffix: len(subset)},
        )

    def up(self) -> "GeneSet":
        """Genes with a positive log2 fold change."""
        return self._subset(self.table[self.log2fc_column] > 0, "up")

    def down(self) -> "GeneSet":
        """Genes with a negative log2 fold change."""
        return self._subset(self.table[self.log2fc_column] < 0, "down")

    def summary(self) -> Dict[str, Any]:
        """Row counts after each filter stage plus the validation lists."""
        return {
            "name": self.name,
            "stages": dict(self.stages),
            "size": self.size,
            "up": int((self.table[self.log2fc_column] > 0).sum()),
            "down": int((self.table[self.log2fc_column] < 0).sum()),
            "duplicates": list(self.validation["duplicates"]),
            "non_valid": len(self.validation["non_valid"]),
        }

    def to_csv(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        self.table.to_csv(path, index=False)
        logger.info(f"Saved {self.size} filtered genes to {path}")
        return path
