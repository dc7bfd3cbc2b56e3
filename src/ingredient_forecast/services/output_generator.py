"""
Output Generator Service
=========================
Writes the artifacts of a pipeline run.

Output Structure:
outputs/
├── forecast_<ingredient>.csv       date + one rounded column per store
├── demand_matrix_<ingredient>.csv  densified history (blank = missing day)
├── model_selection.csv             holdout scores per store and candidate
└── run_summary.json                config, stage diagnostics, exported files
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from ..utils.constants import OUTPUT_CONFIG
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class OutputPackage:
    """
    Everything a run exports.

    Attributes
    ----------
    forecast_table : pd.DataFrame
        Final wide forecast table
    demand_matrix : pd.DataFrame
        Store-by-date demand history, DatetimeIndex 'date'
    model_selection : pd.DataFrame
        Candidate scores per store
    summary : Dict[str, Any]
        Configuration and per-stage diagnostics
    """
    forecast_table: pd.DataFrame = field(default_factory=pd.DataFrame)
    demand_matrix: pd.DataFrame = field(default_factory=pd.DataFrame)
    model_selection: pd.DataFrame = field(default_factory=pd.DataFrame)
    summary: Dict[str, Any] = field(default_factory=dict)


class OutputGenerator:
    """
    Export an OutputPackage to CSV and JSON.

    Usage
    -----
    >>> generator = OutputGenerator(output_dir="./outputs")
    >>> exported = generator.export(package, ingredient_name="lettuce")
    """

    def __init__(self, output_dir: str = None, config: Optional[Dict] = None):
        self.config = config or OUTPUT_CONFIG
        self.output_dir = Path(output_dir or self.config.get('output_base_dir', 'outputs'))
        self.output_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"OutputGenerator initialized: output_dir={self.output_dir}")

    def export(self, package: OutputPackage, ingredient_name: str) -> Dict[str, str]:
        """
        Write all artifacts of a run.

        Returns
        -------
        Dict[str, str]
            Mapping of artifact type to file path
        """
        exported = {}
        date_format = self.config.get('date_format', '%Y-%m-%d')
        slug = _slugify(ingredient_name)

        if len(package.forecast_table.columns) > 0:
            path = self.output_dir / self.config['forecast_file'].format(ingredient=slug)
            self._write_csv(package.forecast_table, path, date_format)
            exported['forecast_csv'] = str(path)
            logger.info(f"Exported forecast table to {path}")

        if len(package.demand_matrix) > 0:
            path = self.output_dir / self.config['matrix_file'].format(ingredient=slug)
            matrix = package.demand_matrix.copy()
            matrix.columns = [str(c) for c in matrix.columns]
            matrix.to_csv(
                path,
                index=True,
                date_format=date_format,
                encoding=self.config.get('csv_encoding', 'utf-8')
            )
            exported['demand_matrix_csv'] = str(path)
            logger.info(f"Exported demand matrix to {path}")

        if len(package.model_selection) > 0:
            path = self.output_dir / self.config['selection_file']
            self._write_csv(package.model_selection, path, date_format)
            exported['model_selection_csv'] = str(path)

        summary = dict(package.summary)
        summary['generated_at'] = datetime.now().isoformat()
        summary['exported_files'] = dict(exported)

        path = self.output_dir / self.config['summary_file']
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(summary, f, indent=2, default=str)
        exported['summary_json'] = str(path)

        logger.info(f"Export complete: {len(exported)} files written")
        return exported

    def _write_csv(self, df: pd.DataFrame, path: Path, date_format: str) -> None:
        df.to_csv(
            path,
            index=self.config.get('csv_index', False),
            date_format=date_format,
            encoding=self.config.get('csv_encoding', 'utf-8')
        )


def _slugify(name: str) -> str:
    return '_'.join(str(name).strip().lower().split()) or 'ingredient'
