"""
Format converter for submission exports and form templates
"""
import io
import logging
from typing import Any, Dict, List, Optional
import pandas as pd
from openpyxl import Workbook
from bbos.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "excel")
MEDIA_TYPES = {
    "csv": "text/csv",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
FILE_EXTENSIONS = {"csv": "csv", "excel": "xlsx"}


class FormatConverter:
    """Converter from row dicts to downloadable formats"""

    @staticmethod
    def convert_to_csv(rows: List[Dict[str, Any]], columns: Optional[List[str]] = None) -> str:
        """
        Convert rows to a CSV string

        Args:
            rows: List of dictionaries
            columns: Column order; keys missing from a row are left blank

        Returns:
            CSV string (header only when there are no rows but columns are given)
        """
        if not rows and not columns:
            return ""

        df = pd.DataFrame(rows, columns=columns)

        output = io.StringIO()
        df.to_csv(output, index=False, encoding="utf-8")
        csv_string = output.getvalue()
        output.close()

        return csv_string

    @staticmethod
    def convert_to_excel(
        rows: List[Dict[str, Any]],
        columns: Optional[List[str]] = None,
        sheet_name: str = "Data"
    ) -> bytes:
        """
        Convert rows to Excel bytes

        Args:
            rows: List of dictionaries
            columns: Column order
            sheet_name: Worksheet title (Excel caps it at 31 characters)

        Returns:
            Excel file as bytes
        """
        sheet_name = (sheet_name or "Data")[:31]

        if not rows and not columns:
            wb = Workbook()
            ws = wb.active
            ws.title = sheet_name
            output = io.BytesIO()
            wb.save(output)
            return output.getvalue()

        df = pd.DataFrame(rows, columns=columns)

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name=sheet_name)

        excel_bytes = output.getvalue()
        output.close()

        return excel_bytes

    @staticmethod
    def convert_format(
        rows: List[Dict[str, Any]],
        to_format: str,
        columns: Optional[List[str]] = None,
        sheet_name: str = "Data"
    ) -> Any:
        """Convert rows to csv (str) or excel (bytes)"""
        if to_format == "csv":
            return FormatConverter.convert_to_csv(rows, columns)
        elif to_format == "excel":
            return FormatConverter.convert_to_excel(rows, columns, sheet_name)
        raise ValidationError(f"Unsupported export format '{to_format}'. Allowed: {', '.join(EXPORT_FORMATS)}")
