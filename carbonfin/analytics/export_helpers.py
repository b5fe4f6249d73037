from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
from openpyxl.styles import Font  # noqa: E402
from openpyxl.utils import get_column_letter  # noqa: E402

from carbonfin.finance.statements import StatementBundle  # noqa: E402
from carbonfin.finance.utils import Sentinel  # noqa: E402

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Sheet names for the six statements, in workbook order.
STATEMENT_SHEETS = {
    "incomeStatements": "Income Statement",
    "balanceSheets": "Balance Sheet",
    "cashFlowStatements": "Cash Flow",
    "debtSchedule": "Debt Schedule",
    "carbonStream": "Carbon Stream",
    "freeCashFlow": "FCFE",
}


def flatten_metrics(metrics: Mapping[str, Any]) -> pd.DataFrame:
    """Headline (scalar) metrics as a two-column key/value frame.

    Nested category dicts are skipped; sentinels become their string value.
    """
    rows: List[Dict[str, Any]] = []
    for key, value in metrics.items():
        if isinstance(value, (dict, list, tuple)):
            continue
        if isinstance(value, Sentinel):
            value = value.value
        rows.append({"metric": key, "value": value})
    return pd.DataFrame(rows, columns=["metric", "value"])


# =====================================================================
# Excel export helpers
# =====================================================================


class ExcelExporter:
    """Write statements and scenario analytics to an Excel workbook.

    The ExcelWriter is created lazily so no empty file appears if nothing
    is written. Callers finish with :meth:`save` (the high-level
    ``export_*`` helpers do this for you).
    """

    def __init__(self, output_path: PathLike) -> None:
        self.output_path = Path(output_path)
        self._writer: Optional[pd.ExcelWriter] = None

    # ------------------------------------------------------------------
    # Core writer lifecycle
    # ------------------------------------------------------------------
    def _ensure_writer(self) -> pd.ExcelWriter:
        if self._writer is None:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = pd.ExcelWriter(self.output_path, engine="openpyxl")
        return self._writer

    def save(self) -> None:
        """Persist the workbook to disk. Safe to call more than once."""
        if self._writer is not None:
            self._writer.close()
            self._writer = None
            logger.info("ExcelExporter: wrote workbook to %s", self.output_path)

    # ------------------------------------------------------------------
    # Generic DataFrame sheet helper
    # ------------------------------------------------------------------
    def add_dataframe_sheet(
        self,
        sheet_name: str,
        df: pd.DataFrame,
        freeze_panes: Optional[str] = None,
        format_headers: bool = True,
        auto_filter: bool = True,
    ) -> None:
        """Write a DataFrame to a sheet with light formatting.

        - Optionally freezes panes (e.g. "B2").
        - Optionally bolds the header row.
        - Optionally applies an AutoFilter over the used range.
        """
        writer = self._ensure_writer()
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        ws = writer.sheets[sheet_name]

        try:
            if format_headers:
                for cell in ws[1]:
                    cell.font = Font(bold=True)
            if auto_filter:
                ws.auto_filter.ref = ws.dimensions
            if freeze_panes:
                ws.freeze_panes = freeze_panes
        except (AttributeError, KeyError, ValueError) as exc:
            logger.warning("ExcelExporter: formatting failed on sheet %s: %s", sheet_name, exc)

    # ------------------------------------------------------------------
    # Statement workbook
    # ------------------------------------------------------------------
    def export_bundle(self, bundle: StatementBundle) -> Path:
        """One sheet per statement plus a Metrics sheet; saves the workbook."""
        logger.info("ExcelExporter: exporting statements to %s", self.output_path)
        frames = bundle.to_frames()
        for key, sheet in STATEMENT_SHEETS.items():
            self.add_dataframe_sheet(sheet, frames[key], freeze_panes="B2")
        self.add_dataframe_sheet("Metrics", flatten_metrics(bundle.metrics), auto_filter=False)
        self.autofit_all()
        self.save()
        return self.output_path

    # ------------------------------------------------------------------
    # Scenario batch workbook
    # ------------------------------------------------------------------
    def export_summary_and_timeseries(
        self,
        summary_df: pd.DataFrame,
        timeseries_df: pd.DataFrame,
        summary_sheet: str = "Summary",
        timeseries_sheet: str = "Timeseries",
        failures_df: Optional[pd.DataFrame] = None,
    ) -> Path:
        """Summary, timeseries and (when given) failures sheets; saves."""
        logger.info(
            "ExcelExporter: exporting summary + timeseries to %s",
            self.output_path,
        )
        self.add_dataframe_sheet(summary_sheet, summary_df)
        self.add_dataframe_sheet(timeseries_sheet, timeseries_df, freeze_panes="C2")
        if failures_df is not None and not failures_df.empty:
            self.add_dataframe_sheet("Failures", failures_df)

        if {"scenario_name", "year", "dscr"}.issubset(timeseries_df.columns):
            dscr_view = timeseries_df[["scenario_name", "year", "dscr"]].rename(
                columns={"year": "Year"}
            )
            self.add_dataframe_sheet("DSCR_View", dscr_view)

        irr_cols = [c for c in summary_df.columns if "irr" in str(c).lower()]
        if irr_cols and "scenario_name" in summary_df.columns:
            self.add_dataframe_sheet("IRR_View", summary_df[["scenario_name", *irr_cols]])

        self.autofit_all()
        self.save()
        return self.output_path

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------
    def autofit_all(self) -> None:
        """Column width from the longest rendered value, for every sheet."""
        if self._writer is None:
            return

        for ws in self._writer.book.worksheets:
            for column_cells in ws.columns:
                cells = list(column_cells)
                if not cells:
                    continue
                max_length = max(
                    len(str(cell.value)) if cell.value is not None else 0 for cell in cells
                )
                col_letter = get_column_letter(cells[0].column)
                ws.column_dimensions[col_letter].width = max_length + 2


# =====================================================================
# Chart export helpers (PNG generation, CI/CLI friendly)
# =====================================================================


class ChartExporter:
    """Write cash, DSCR and tornado charts to PNG files.

    Missing columns or all-empty series are logged and skipped (return
    None) so a batch export never fails on one chart.
    """

    def __init__(self, output_dir: PathLike) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _save(self, fig: Any, out_path: Path, label: str) -> Optional[Path]:
        try:
            fig.tight_layout()
            fig.savefig(out_path, dpi=150)
        except (OSError, ValueError) as exc:
            logger.warning("ChartExporter: %s chart could not be written: %s", label, exc)
            return None
        finally:
            plt.close(fig)
        logger.info("ChartExporter: %s chart written to %s", label, out_path)
        return out_path

    def _line_chart(
        self,
        timeseries_df: pd.DataFrame,
        column: str,
        ylabel: str,
        title: str,
        output_file: str,
        threshold: Optional[float] = None,
    ) -> Optional[Path]:
        required = {"scenario_name", "year", column}
        missing = required - set(timeseries_df.columns)
        if missing:
            logger.warning("ChartExporter: %s chart skipped; missing columns %s", column, missing)
            return None

        out_path = self.output_dir / output_file
        fig, ax = plt.subplots()
        plotted = 0
        for name, grp in timeseries_df.groupby("scenario_name"):
            series = pd.to_numeric(grp[column], errors="coerce")
            if series.notna().any():
                ax.plot(grp["year"], series, marker="o", label=str(name))
                plotted += 1

        if not plotted:
            plt.close(fig)
            logger.warning("ChartExporter: no numeric values in '%s'; chart skipped", column)
            return None

        if threshold is not None:
            ax.axhline(threshold, linestyle="--", linewidth=1)
        ax.set_xlabel("Year")
        ax.set_ylabel(ylabel)
        ax.set_title(title)
        ax.legend()
        return self._save(fig, out_path, column)

    def export_dscr_chart(
        self, timeseries_df: pd.DataFrame, output_file: str = "dscr_series.png"
    ) -> Optional[Path]:
        """DSCR by year per scenario, with the 1.0x line. Years without debt service are gaps."""
        return self._line_chart(
            timeseries_df,
            "dscr",
            "DSCR",
            "Debt Service Coverage Ratio (DSCR) by Scenario",
            output_file,
            threshold=1.0,
        )

    def export_cash_chart(
        self, timeseries_df: pd.DataFrame, output_file: str = "cash_end.png"
    ) -> Optional[Path]:
        return self._line_chart(
            timeseries_df, "cash_end", "Cash (end of year)", "Closing cash by Scenario", output_file
        )

    def export_tornado_chart(
        self, tornado_df: pd.DataFrame, output_file: str = "tornado.png"
    ) -> Optional[Path]:
        """Horizontal bars from metric_low to metric_high per variable."""
        required = {"label", "metric_low", "metric_high"}
        if tornado_df.empty or not required.issubset(tornado_df.columns):
            logger.warning("ChartExporter: tornado chart skipped; no sensitivity rows")
            return None

        df = tornado_df.dropna(subset=["metric_low", "metric_high"])
        if df.empty:
            logger.warning("ChartExporter: tornado chart skipped; no numeric results")
            return None

        out_path = self.output_dir / output_file
        low = pd.to_numeric(df["metric_low"])
        high = pd.to_numeric(df["metric_high"])
        left = pd.concat([low, high], axis=1).min(axis=1)
        width = (high - low).abs()

        fig, ax = plt.subplots()
        positions = list(range(len(df)))[::-1]
        ax.barh(positions, width, left=left)
        ax.set_yticks(positions)
        ax.set_yticklabels(df["label"].astype(str).tolist())
        if "base_metric" in df.columns and pd.notna(df["base_metric"].iloc[0]):
            ax.axvline(float(df["base_metric"].iloc[0]), linestyle="--", linewidth=1)
        ax.set_title("Sensitivity (tornado)")
        return self._save(fig, out_path, "tornado")


__all__ = [
    "ExcelExporter",
    "ChartExporter",
    "STATEMENT_SHEETS",
    "flatten_metrics",
]
