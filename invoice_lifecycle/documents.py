"""
Supporting document store.

Resolves stored document references (inline base64 data URIs or paths under
a base directory) and renders spreadsheet previews with pandas.
"""

import base64
import binascii
import io
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from invoice_lifecycle.models import NotFoundError, ValidationError

import logging
logger = logging.getLogger(__name__)


PREVIEW_ROW_LIMIT = 100
DATA_URI_PATTERN = re.compile(r'^data:([^;]+);base64,(.+)$', re.DOTALL)

EXCEL_MIME_TYPES = {
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}
CSV_MIME_TYPES = {'text/csv', 'application/csv', 'text/plain'}
CSV_SHEET_NAME = 'Sheet1'


@dataclass
class DocumentRecord:
    """An uploaded supporting document attached to an invoice."""
    id: str
    file_url: str
    invoice_id: Optional[str] = None
    type: Optional[str] = None
    file_name: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {'documentId': self.id, 'type': self.type, 'fileName': self.file_name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DocumentRecord':
        return cls(
            id=data['id'],
            file_url=data.get('fileUrl', ''),
            invoice_id=data.get('invoiceId'),
            type=data.get('type'),
            file_name=data.get('fileName')
        )


class DocumentStore:
    """Registry of supporting documents with content resolution and previews."""

    def __init__(self, base_dir: Union[str, Path, None] = None,
                 records: Iterable[DocumentRecord] = ()):
        self.base_dir = Path(base_dir or Path.cwd()).resolve()
        self._records: Dict[str, DocumentRecord] = {}
        self.logger = logging.getLogger(f"{__name__}.DocumentStore")
        for record in records:
            self.add(record)

    def add(self, record: DocumentRecord) -> DocumentRecord:
        self._records[record.id] = record
        return record

    def get(self, document_id: str) -> DocumentRecord:
        """
        Raises:
            NotFoundError: If the document is unknown or has no file
        """
        record = self._records.get(document_id)
        if record is None or not record.file_url:
            raise NotFoundError("Document not found")
        return record

    def resolve(self, file_ref: str) -> bytes:
        """
        Load document content from its reference.

        Args:
            file_ref: "data:<mime>;base64,<payload>" or a "/"-rooted path
                relative to the base directory

        Returns:
            Raw file bytes

        Raises:
            ValidationError: On a malformed or unsupported reference, or a path
                escaping the base directory
            NotFoundError: If the referenced file does not exist
        """
        if file_ref.startswith('data:'):
            match = DATA_URI_PATTERN.match(file_ref)
            if not match:
                raise ValidationError("Invalid file data")
            try:
                return base64.b64decode(match.group(2), validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationError(f"Invalid file data: {e}") from e

        if file_ref.startswith('/'):
            path = (self.base_dir / file_ref.lstrip('/')).resolve()
            if path != self.base_dir and self.base_dir not in path.parents:
                raise ValidationError("Unsupported file reference")
            try:
                return path.read_bytes()
            except FileNotFoundError as e:
                raise NotFoundError("Document file not found") from e

        raise ValidationError("Unsupported file reference")

    @staticmethod
    def _is_csv(record: DocumentRecord) -> bool:
        match = DATA_URI_PATTERN.match(record.file_url)
        if match:
            mime = match.group(1).strip().lower()
            if mime in EXCEL_MIME_TYPES:
                return False
            if mime in CSV_MIME_TYPES:
                return True
        name = (record.file_name or record.file_url).lower()
        return name.endswith('.csv') or name.endswith('.txt')

    def preview(self, document_id: str) -> Dict[str, Any]:
        """
        Parse a spreadsheet document (CSV, XLS or XLSX) for preview.

        Returns:
            {"data": first 100 rows as lists of strings, "totalRows": int,
             "sheetName": str}

        Raises:
            NotFoundError: If the document is unknown
            ValidationError: If the reference or the spreadsheet is unreadable
        """
        record = self.get(document_id)
        content = self.resolve(record.file_url)

        try:
            if self._is_csv(record):
                sheet_name = CSV_SHEET_NAME
                df = pd.read_csv(io.BytesIO(content), header=None, dtype=str,
                                 keep_default_na=False, skip_blank_lines=False)
            else:
                excel = pd.ExcelFile(io.BytesIO(content))
                sheet_name = excel.sheet_names[0]
                df = excel.parse(sheet_name, header=None, dtype=str).fillna('')
        except pd.errors.EmptyDataError:
            return {'data': [], 'totalRows': 0, 'sheetName': CSV_SHEET_NAME}
        except (ValueError, OSError, zipfile.BadZipFile, pd.errors.ParserError) as e:
            self.logger.error(f"Failed to parse spreadsheet {document_id}: {e}")
            raise ValidationError("Failed to parse spreadsheet") from e

        rows: List[List[str]] = df.values.tolist()
        self.logger.info(f"Previewed document {document_id}: {len(rows)} rows from {sheet_name}")
        return {
            'data': rows[:PREVIEW_ROW_LIMIT],
            'totalRows': len(rows),
            'sheetName': sheet_name
        }

    def documents_for(self, invoice_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Map invoice id -> summaries of its supporting documents.

        Best-effort: any failure is logged and yields an empty mapping.
        """
        try:
            wanted = set(invoice_ids)
            docs: Dict[str, List[Dict[str, Any]]] = {}
            for record in self._records.values():
                if record.invoice_id in wanted:
                    docs.setdefault(record.invoice_id, []).append(record.summary())
            return docs
        except Exception as e:
            self.logger.error(f"Failed to load supporting documents: {e}", exc_info=True)
            return {}
