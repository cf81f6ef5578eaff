"""
audit.py - Audit trail records and text formatting

Every public market operation, successful or not, leaves one AuditRecord in
Market.audit_trail. Records are plain data; formatting and writing them to a
file is left to the caller so that no market operation ever waits on I/O.

Line format:
    NAME|TICK|OPERATION-counterparty-KEY:value-...-OK
    NAME|TICK|OPERATION-counterparty-KEY:value-...-ERROR:Reason
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union


OUTCOME_OK = "OK"
OUTCOME_ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """
    One attempted market operation.

    Attributes:
        market: Name of the market that handled the call
        tick: Clock tick when the call was handled
        operation: LOCK_BUY, BUY, LOCK_SELL, SELL, INIT or NOTIFY
        counterparty: Trader name ("" when the call carries only a token)
        details: Ordered (key, value) pairs describing the request
        outcome: OUTCOME_OK or OUTCOME_ERROR
        error: Exception class name when outcome is OUTCOME_ERROR
    """
    market: str
    tick: int
    operation: str
    counterparty: str
    details: Tuple[Tuple[str, str], ...]
    outcome: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_OK


def format_record(record: AuditRecord) -> str:
    """Render a record as a single audit line (without trailing newline)."""
    parts = [record.operation]
    if record.counterparty:
        parts.append(record.counterparty)
    parts.extend(f"{key}:{value}" for key, value in record.details)
    if record.ok:
        parts.append(OUTCOME_OK)
    else:
        parts.append(f"{OUTCOME_ERROR}:{record.error}" if record.error else OUTCOME_ERROR)
    return f"{record.market}|{record.tick}|" + "-".join(parts)


def write_audit_log(records: Iterable[AuditRecord], path: Union[str, Path]) -> int:
    """
    Append records to a text file, one line each.

    Returns:
        Number of lines written
    """
    lines = [format_record(r) for r in records]
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        for line in lines:
            handle.write(line + "\n")
    return len(lines)
