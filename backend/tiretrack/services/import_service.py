# Overview: Bulk ingest of already-parsed spreadsheet rows, one transition per row.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from flask import current_app

from ..errors import StorageUnavailable, TransitionError
from .transition_service import (
    BatchImportRow,
    CONDITION_DISCARDED,
    CONDITION_STOCK,
    POLICY_UPDATE_EXISTING,
    execute,
)
"""
Batch import rules (authoritative)

- Rows are applied strictly in input order. A later row may re-target a
  barcode introduced earlier in the same batch, so rows are never reordered
  or parallelized.
- Each row is its own unit of work: a rejected row is recorded and the
  batch continues; earlier rows stay committed.
- Models and containers are resolved by name and created when missing.
- The raw row is kept in the history metadata for provenance.
"""


class BatchImportError(ValueError):
    """Raised when a batch cannot be started at all."""


# Header aliases accepted from spreadsheets (lower-cased)
BARCODE_KEYS = ("barcode", "codigo", "code")
MODEL_KEYS = ("model_name", "model", "modelo")
CONTAINER_KEYS = ("container_name", "container", "conteiner")
TIMESTAMP_KEYS = ("timestamp", "occurred_at", "data")
CONDITION_KEYS = ("condition", "condicao")


@dataclass
class RowError:
    row_number: int
    barcode: Optional[str]
    code: str
    message: str

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "barcode": self.barcode,
            "code": self.code,
            "message": self.message,
        }


@dataclass
class ImportResult:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "error_count": len(self.errors),
            "errors": [e.to_dict() for e in self.errors],
        }


def _pick(row: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip() != "":
            return value
    return None


def _normalize_condition(value: Any) -> Optional[str]:
    """Map free-text spreadsheet conditions onto the supported values."""
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    if text.startswith("descart") or text.startswith("discard"):
        return CONDITION_DISCARDED
    if text in ("stock", "estoque", "ok", "new", "novo"):
        return CONDITION_STOCK
    return text


def row_to_command(
    row: dict[str, Any],
    *,
    policy: str,
    discard_policy: Optional[str] = None,
    default_model: Optional[str] = None,
    default_container: Optional[str] = None,
) -> BatchImportRow:
    """Build a BatchImportRow from a parsed row with flexible headers."""
    normalized = {str(k).strip().lower(): v for k, v in row.items() if k is not None}

    barcode = _pick(normalized, BARCODE_KEYS)
    if isinstance(barcode, float) and barcode.is_integer():
        # Spreadsheet readers hand numeric codes back as floats
        barcode = int(barcode)
    model_name = _pick(normalized, MODEL_KEYS) or default_model
    container_name = _pick(normalized, CONTAINER_KEYS) or default_container
    timestamp = _pick(normalized, TIMESTAMP_KEYS)

    return BatchImportRow(
        barcode=str(barcode).strip() if barcode is not None else "",
        model_name=str(model_name).strip() if model_name is not None else "",
        container_name=str(container_name).strip() if container_name is not None else "",
        occurred_at=timestamp,
        policy=policy,
        condition=_normalize_condition(_pick(normalized, CONDITION_KEYS)),
        discard_policy=discard_policy,
        metadata={"import_row": {k: _jsonable(v) for k, v in row.items()}},
    )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def import_rows(
    rows: Iterable[dict[str, Any]],
    *,
    policy: str = POLICY_UPDATE_EXISTING,
    discard_policy: Optional[str] = None,
    default_model: Optional[str] = None,
    default_container: Optional[str] = None,
    performed_by: Optional[str] = None,
    source: Optional[str] = None,
) -> ImportResult:
    """
    Apply parsed rows in order and report per-row outcomes.

    Rows without a barcode are ignored (blank spreadsheet lines).
    StorageUnavailable aborts the batch; the caller may re-run it, and rows
    already applied are idempotent under update_existing.
    """
    if rows is None:
        raise BatchImportError("rows are required")

    result = ImportResult()
    for row_number, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            result.errors.append(RowError(row_number, None, "invalid_row", "Row must be an object"))
            continue

        command = row_to_command(
            row,
            policy=policy,
            discard_policy=discard_policy,
            default_model=default_model,
            default_container=default_container,
        )
        if not command.barcode:
            continue

        if source:
            command.metadata["source"] = source
        command.metadata["row_number"] = row_number

        try:
            outcome = execute(command, performed_by=performed_by)
        except TransitionError as exc:
            result.errors.append(RowError(row_number, command.barcode, exc.code, str(exc)))
            continue
        except StorageUnavailable:
            current_app.logger.warning("Import aborted at row %d: storage unavailable", row_number)
            raise

        result.processed += 1
        if outcome.action == "created":
            result.created += 1
        elif outcome.action == "skipped":
            result.skipped += 1
        else:
            result.updated += 1

    current_app.logger.info(
        "Import finished: %d processed, %d created, %d updated, %d skipped, %d errors",
        result.processed, result.created, result.updated, result.skipped, len(result.errors),
    )
    return result
