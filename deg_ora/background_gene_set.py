import logging
from pathlib import Path
from typing import Iterable, List, Union

from deg_ora.errors import InputTableError
from deg_ora.gene_set import clean_symbols, read_gene_table

logger = logging.getLogger(__name__)


class BackgroundGeneSet:
    """
    The gene universe used as the custom g:Profiler domain.
    """

    def __init__(
        self, background_file_path: Union[str, Path], gene_column: str = "gene", name: str = ""
    ) -> None:
        """
        Initialize BackgroundGeneSet from a CSV file.

        Args:
            background_file_path: Path to the background CSV
            gene_column: Column holding the gene symbols
            name: Name for the background gene list
        """
        self.genes: List[str] = self._load_from_file(background_file_path, gene_column)
        self.size: int = len(self.genes)
        self.name = name if name else Path(background_file_path).stem
        self._lookup = set(self.genes)

    def _load_from_file(self, background_file_path: Union[str, Path], gene_column: str) -> List[str]:
        """
        Load trimmed, non-empty, unique background symbols in file order.

        Args:
            background_file_path: Path to the background CSV
            gene_column: Column holding the gene symbols

        Returns:
            List of gene symbols representing the background

        Raises:
            InputTableError: If no symbol survives cleaning
        """
        df = read_gene_table(background_file_path, gene_column)
        symbols = clean_symbols(df[gene_column]).dropna()
        n_rows = len(df)
        genes = symbols.drop_duplicates(keep="first").astype(str).tolist()
        if len(genes) < n_rows:
            logger.info(f"Background: {n_rows} rows -> {len(genes)} unique symbols")
        if not genes:
            raise InputTableError(
                f"Background file {background_file_path} has no gene symbols in column '{gene_column}'"
            )
        return genes

    def has_gene(self, gene: str) -> bool:
        """
        Check if the given gene is present in the background.

        Args:
            gene: A gene name.

        Returns:
            True if the gene is present, False otherwise.
        """
        return gene in self._lookup

    def missing_from(self, genes: Iterable[str]) -> List[str]:
        """Query genes that are not part of the background, in input order."""
        missing = [gene for gene in genes if gene not in self._lookup]
        if missing:
            logger.warning(
                f"{len(missing)} query genes are not in background '{self.name}': "
                f"{missing[:10]}{'...' if len(missing) > 10 else ''}"
            )
        return missing
