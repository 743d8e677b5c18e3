# =============================================================================
# delivery_core/services/export_service.py
# JSON Backup and CSV Export of Tracker Data
# =============================================================================
"""
ExportService - read-only projections of the engine's data.

- export_json(): full backup {dailyData, stores, exportedAt, formatVersion}
- export_csv():  one row per delivery, optional inclusive date range
"""

from __future__ import annotations
import csv
import json
from datetime import date as date_type, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from delivery_core.errors import DataValidationError
from delivery_core.models import DailyAggregate, Store
from delivery_core.services.base_service import BaseService

FORMAT_VERSION = "2.0.0-database-only"

# Item details are left out of the CSV
CSV_COLUMNS = {
    "Date": lambda d: d.date,
    "Store Name": lambda d: d.store_name,
    "Customer Name": lambda d: d.customer_name,
    "Phone Number": lambda d: d.phone_number,
    "Address": lambda d: d.address,
    "Order Number": lambda d: d.order_number,
    "Order Price": lambda d: d.order_price,
    "Delivery Status": lambda d: d.delivery_status.value,
    "Total Deliveries": lambda d: d.total_deliveries,
    "Delivered": lambda d: d.delivered,
    "Pending": lambda d: d.pending,
    "Bills": lambda d: d.bills,
    "Total Amount": lambda d: d.payment_status.total,
    "Paid Amount": lambda d: d.payment_status.paid,
    "Pending Amount": lambda d: d.payment_status.pending,
    "Overdue Amount": lambda d: d.payment_status.overdue,
}


class ExportService(BaseService):
    """
    Builds backup and spreadsheet exports.

    Usage:
        exporter = ExportService()
        text = exporter.export_csv(engine.daily_data, start_date="2024-01-01")
        name = exporter.export_filename("csv", start_date="2024-01-01")
    """

    def __init__(self, today_fn: Optional[Callable[[], str]] = None):
        super().__init__()
        self._today = today_fn or (lambda: date_type.today().isoformat())

    def export_json(
        self,
        daily_data: List[DailyAggregate],
        stores: List[Store],
    ) -> Dict[str, Any]:
        """Full backup document (summaries included for readability)."""
        return {
            "dailyData": [day.to_dict(include_summary=True) for day in daily_data],
            "stores": [store.to_dict() for store in stores],
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "formatVersion": FORMAT_VERSION,
        }

    def export_json_text(self, daily_data: List[DailyAggregate], stores: List[Store]) -> str:
        return json.dumps(self.export_json(daily_data, stores), indent=2)

    def to_dataframe(
        self,
        daily_data: List[DailyAggregate],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> pd.DataFrame:
        """One row per delivery of the days within [start_date, end_date]."""
        days = [
            day for day in daily_data
            if (not start_date or day.date >= start_date)
            and (not end_date or day.date <= end_date)
        ]
        rows = [
            {column: getter(d) for column, getter in CSV_COLUMNS.items()}
            for day in days
            for d in day.deliveries
        ]
        return pd.DataFrame(rows, columns=list(CSV_COLUMNS))

    def export_csv(
        self,
        daily_data: List[DailyAggregate],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> str:
        """
        CSV text, every field quoted.

        Raises:
            DataValidationError: no deliveries fall in the range
        """
        df = self.to_dataframe(daily_data, start_date, end_date)
        if df.empty:
            raise DataValidationError(
                "No delivery data found for the selected date range",
                field="date_range",
                actual=f"{start_date or '...'} to {end_date or '...'}",
            )

        self.logger.info(f"Exporting {len(df)} deliveries to CSV")
        return df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")

    def export_filename(
        self,
        kind: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> str:
        if kind == "json":
            return f"delivery-tracker-export-{self._today()}.json"

        if start_date and end_date:
            date_range = f"{start_date}_to_{end_date}"
        elif start_date:
            date_range = f"from_{start_date}"
        elif end_date:
            date_range = f"until_{end_date}"
        else:
            date_range = self._today()
        return f"delivery-data-{date_range}.csv"

    def write_csv(
        self,
        directory: Path,
        daily_data: List[DailyAggregate],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Path:
        """Write the CSV export into a directory and return its path."""
        path = Path(directory) / self.export_filename("csv", start_date, end_date)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export_csv(daily_data, start_date, end_date), encoding="utf-8")
        return path

    def write_json(
        self,
        directory: Path,
        daily_data: List[DailyAggregate],
        stores: List[Store],
    ) -> Path:
        path = Path(directory) / self.export_filename("json")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export_json_text(daily_data, stores), encoding="utf-8")
        self.logger.info(f"Exported backup to {path}")
        return path
