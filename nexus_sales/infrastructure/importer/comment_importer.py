"""
Comment Importer - Spreadsheet Import for Bulk Replies
=======================================================

Reads exported comment sheets (.csv, .xlsx, .xls) and returns one
CommentRow per comment that carries a Facebook comment ID somewhere in
the row. The Name and Comment columns are matched case-insensitively and
are optional; the ID may sit in any cell.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

# "<post>_<comment>" IDs first, then bare numeric IDs
UNDERSCORE_ID_RE = re.compile(r"\d+_\d+")
DIGITS_ONLY_ID_RE = re.compile(r"\b\d{10,}\b")

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls")


@dataclass
class CommentRow:
    author: str
    comment: str
    comment_id: str
    reply: str = ""
    status: str = ""

    def to_dict(self) -> dict:
        return {
            "author": self.author,
            "comment": self.comment,
            "comment_id": self.comment_id,
            "reply": self.reply,
            "status": self.status,
        }


def find_comment_id(text: str) -> Optional[str]:
    """First comment ID found in text, underscore form preferred."""
    if not text:
        return None
    match = UNDERSCORE_ID_RE.search(text) or DIGITS_ONLY_ID_RE.search(text)
    return match.group(0) if match else None


class CommentImporter:
    """
    Usage:
        importer = CommentImporter()
        rows = importer.parse("comments.xlsx")
        # [CommentRow(author="Sara", comment="Interested!", comment_id="123_456"), ...]
    """

    def __init__(self):
        self.detected_columns = {}

    def parse(self, file_path: str, sheet_name: Optional[str] = None) -> List[CommentRow]:
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        return self.parse_buffer(file_path, path.suffix, sheet_name)

    def parse_buffer(self, source, ext: str, sheet_name: Optional[str] = None) -> List[CommentRow]:
        """Parse a path or file-like object holding a sheet of type ext."""
        ext = ext.lower()
        try:
            if ext == ".csv":
                df = pd.read_csv(source, dtype=str, keep_default_na=False, skipinitialspace=True)
            elif ext in (".xlsx", ".xls"):
                df = pd.read_excel(source, sheet_name=sheet_name or 0, dtype=str, keep_default_na=False)
            else:
                raise ValueError(f"Unsupported file format: {ext}. Use .xlsx, .xls, or .csv")
        except ValueError:
            raise
        except Exception as e:
            logger.error(f"Failed to read file: {e}")
            raise

        return self.parse_frame(df)

    def parse_frame(self, df: pd.DataFrame) -> List[CommentRow]:
        df = df.rename(columns=lambda c: str(c).strip())
        name_col = self._find_column(df.columns, "name")
        comment_col = self._find_column(df.columns, "comment")
        self.detected_columns = {"name": name_col, "comment": comment_col}
        logger.info(f"Detected columns: {self.detected_columns}")

        rows = []
        skipped = 0
        for _, record in df.iterrows():
            comment_id = None
            for value in record.values:
                comment_id = find_comment_id(self._cell_text(value))
                if comment_id:
                    break

            if not comment_id:
                skipped += 1
                continue

            rows.append(CommentRow(
                author=self._cell_text(record[name_col]) if name_col else "",
                comment=self._cell_text(record[comment_col]) if comment_col else "",
                comment_id=comment_id,
            ))

        logger.info(f"Imported {len(rows)} comments ({skipped} rows without a comment ID)")
        return rows

    @staticmethod
    def _find_column(columns: pd.Index, wanted: str) -> Optional[str]:
        for col in columns:
            if col.lower() == wanted:
                return col
        return None

    @staticmethod
    def _cell_text(value) -> str:
        if value is None:
            return ""
        text = str(value).strip()
        return "" if text.lower() == "nan" else text


def import_comments(file_path: str, sheet_name: Optional[str] = None) -> List[CommentRow]:
    """Convenience wrapper around CommentImporter.parse."""
    return CommentImporter().parse(file_path, sheet_name)
