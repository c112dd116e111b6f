"""Note body encoding and versioned parsing.

Every note holds the same envelope: schema_version, fingerprint and an
ordered list of records. Bodies are JSON with sorted keys, indented so
`git notes show` stays readable.

Two parse modes exist: strict (used before rewriting a note, so nothing
already stored can be dropped) and lenient (used for reading, where
individually broken records are skipped).
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel, ValidationError

from pinkas.errors import LogCorruptError
from pinkas.kernel.run_record import LOG_SCHEMA_VERSION, HistoryLog, RunRecord

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMA_VERSIONS = (LOG_SCHEMA_VERSION,)


def dumps_note(obj: Any) -> str:
    """Stable text form of a note body.

    Rules:
    - Sorted keys
    - Two-space indent, UTF-8 (no ASCII escaping)
    - Trailing newline
    """
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False) + "\n"


def encode_records(fingerprint: str, records: Sequence[BaseModel]) -> str:
    """Serialize records (oldest first) into a note body."""
    return dumps_note({
        "schema_version": LOG_SCHEMA_VERSION,
        "fingerprint": fingerprint,
        "runs": [record.model_dump(mode="json") for record in records],
    })


def encode_log(log: HistoryLog) -> str:
    return encode_records(log.fingerprint, log.runs)


def _load_envelope(text: str, fingerprint: Optional[str]) -> Dict[str, Any]:
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise LogCorruptError(fingerprint, f"not valid JSON ({e})")
    if not isinstance(obj, dict):
        raise LogCorruptError(fingerprint, f"expected an object, got {type(obj).__name__}")

    found_version = obj.get("schema_version")
    if found_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise LogCorruptError(fingerprint, f"unsupported schema_version: {found_version!r}")
    if not isinstance(obj.get("runs"), list):
        raise LogCorruptError(fingerprint, "missing runs array")
    return obj


def decode_records(
    text: str,
    fingerprint: Optional[str] = None,
    record_model: Type[BaseModel] = RunRecord,
    strict: bool = True,
) -> List[BaseModel]:
    """Parse the records of a note body.

    Args:
        text: Raw note body
        fingerprint: Object the note is attached to (for messages)
        record_model: Model each record must validate against
        strict: If True, any invalid record rejects the whole note;
            otherwise invalid records are logged and skipped

    Raises:
        LogCorruptError: If the envelope is unusable, or (strict) a record is invalid
    """
    obj = _load_envelope(text, fingerprint)
    records: List[BaseModel] = []
    for index, raw in enumerate(obj["runs"]):
        try:
            records.append(record_model.model_validate(raw))
        except ValidationError as e:
            if strict:
                raise LogCorruptError(fingerprint, f"invalid record at index {index}: {e}")
            run_id = raw.get("id") if isinstance(raw, dict) else None
            logger.warning(
                "Skipping corrupted record %s (index %d) in log %s",
                run_id or "<no id>", index, fingerprint or obj.get("fingerprint"),
            )
    return records


def decode_log(text: str, fingerprint: Optional[str] = None, strict: bool = False) -> HistoryLog:
    """Parse a validation history note (lenient unless strict=True)."""
    runs = decode_records(text, fingerprint, RunRecord, strict=strict)
    obj_fingerprint = fingerprint
    if obj_fingerprint is None:
        obj_fingerprint = str(json.loads(text).get("fingerprint") or "")
    return HistoryLog(fingerprint=obj_fingerprint, runs=runs)
