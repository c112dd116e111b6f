"""Git notes store: one append-only log per (category, fingerprint).

Each category is a notes ref, refs/notes/<namespace>/<category>, and each
log is the note attached to the fingerprint (tree) object. git notes only
supports whole-note replacement, so updates use optimistic concurrency:

1. read the notes ref tip (old)
2. pin a private scratch notes ref at old; read and mutate a local copy
3. write the new note on the scratch ref (new commit, parent old)
4. compare-and-swap: git update-ref <ref> <new> <old>

A rejected swap is a conflict whatever git printed; the attempt is thrown
away and redone against fresh state, a bounded number of times. The ref
only ever moves by a whole-commit swap, so an interrupted writer leaves
the store untouched.
"""

import logging
import os
import random
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Type

from pydantic import BaseModel

from pinkas._internal.codec import decode_log, decode_records, encode_records
from pinkas._internal.git import (
    PathLike,
    resolve_ref,
    run_git,
    validate_notes_ref,
    validate_object_id,
)
from pinkas.codes import RecordCode
from pinkas.config import HistoryConfig
from pinkas.contracts import RecordResult
from pinkas.errors import ConflictError, GitCommandError, LogCorruptError
from pinkas.kernel.run_record import HistoryLog, RunRecord

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "pinkas"
FALLBACK_IDENTITY = {
    "GIT_AUTHOR_NAME": "pinkas",
    "GIT_AUTHOR_EMAIL": "pinkas@localhost",
    "GIT_COMMITTER_NAME": "pinkas",
    "GIT_COMMITTER_EMAIL": "pinkas@localhost",
}

# records -> new records, None to remove the note, or the same list to leave it
Mutation = Callable[[List[BaseModel]], Optional[List[BaseModel]]]
DeletePredicate = Callable[[List[BaseModel]], bool]


class _Outcome(str, Enum):
    COMMITTED = "committed"
    CONFLICT = "conflict"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class NoteEntry:
    """A stored note: the fingerprint it is attached to and its blob."""
    fingerprint: str
    blob: str
    size_bytes: int


class NotesStore:
    """Read/append/delete access to per-fingerprint logs in git notes."""

    def __init__(
        self,
        cwd: Optional[PathLike] = None,
        namespace: str = DEFAULT_NAMESPACE,
        max_attempts: int = 8,
        retry_backoff_ms: int = 25,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")
        self.cwd = cwd
        self.namespace = namespace
        self.max_attempts = max_attempts
        self.retry_backoff_ms = retry_backoff_ms
        self._identity_env: Optional[Dict[str, str]] = None

    @classmethod
    def from_config(cls, config: HistoryConfig, cwd: Optional[PathLike] = None) -> "NotesStore":
        return cls(
            cwd=cwd,
            namespace=config.namespace,
            max_attempts=config.notes.max_append_attempts,
            retry_backoff_ms=config.notes.retry_backoff_ms,
        )

    # -- refs -------------------------------------------------------------

    def notes_ref(self, category: str) -> str:
        ref = f"refs/notes/{self.namespace}/{category}"
        validate_notes_ref(ref)
        return ref

    def _scratch_ref(self) -> str:
        return f"refs/notes/{self.namespace}-scratch/{os.getpid()}-{uuid.uuid4().hex[:12]}"

    def _commit_env(self) -> Dict[str, str]:
        """Identity for notes commits; a fallback only when git has none configured."""
        if self._identity_env is None:
            try:
                configured = run_git(["var", "GIT_COMMITTER_IDENT"], cwd=self.cwd, check=False).ok
            except GitCommandError:
                configured = False
            self._identity_env = {} if configured else dict(FALLBACK_IDENTITY)
        return self._identity_env

    # -- reads ------------------------------------------------------------

    def _read_note_at(self, ref: str, fingerprint: str) -> Optional[str]:
        # list <object> exits non-zero when the ref or the note is missing
        listed = run_git(["notes", f"--ref={ref}", "list", fingerprint], cwd=self.cwd, check=False)
        if not listed.ok or not listed.out:
            return None
        blob = listed.out.split()[0]
        return run_git(["cat-file", "blob", blob], cwd=self.cwd).stdout

    def read_note(self, category: str, fingerprint: str) -> Optional[str]:
        """Raw note body for a fingerprint, or None if absent or unreadable."""
        validate_object_id(fingerprint)
        ref = self.notes_ref(category)
        try:
            return self._read_note_at(ref, fingerprint)
        except GitCommandError as e:
            logger.debug("Cannot read %s note for %s: %s", ref, fingerprint, e)
            return None

    def read_records(
        self,
        category: str,
        fingerprint: str,
        record_model: Type[BaseModel] = RunRecord,
    ) -> Optional[List[BaseModel]]:
        """Records of one log, skipping invalid ones; None if absent or corrupt.

        A corrupt note is logged and left in place for inspection.
        """
        text = self.read_note(category, fingerprint)
        if text is None:
            return None
        try:
            return decode_records(text, fingerprint, record_model, strict=False)
        except LogCorruptError as e:
            logger.warning("Ignoring unusable history note: %s", e)
            return None

    def read(self, category: str, fingerprint: str) -> Optional[HistoryLog]:
        """Validation log for a fingerprint, or None if there is no usable one."""
        text = self.read_note(category, fingerprint)
        if text is None:
            return None
        try:
            return decode_log(text, fingerprint, strict=False)
        except LogCorruptError as e:
            logger.warning("Ignoring unusable history note: %s", e)
            return None

    def list_notes(self, category: str) -> List[NoteEntry]:
        """Every note in a category with its blob size, in git's listing order."""
        ref = self.notes_ref(category)
        try:
            listed = run_git(["notes", f"--ref={ref}", "list"], cwd=self.cwd, check=False)
        except GitCommandError as e:
            logger.debug("Cannot list %s: %s", ref, e)
            return []
        if not listed.ok or not listed.out:
            return []

        pairs = []
        for line in listed.out.splitlines():
            parts = line.split()
            if len(parts) == 2:
                pairs.append((parts[0], parts[1]))
        if not pairs:
            return []

        sizes = self._blob_sizes([blob for blob, _ in pairs])
        return [
            NoteEntry(fingerprint=obj, blob=blob, size_bytes=sizes.get(blob, 0))
            for blob, obj in pairs
        ]

    def _blob_sizes(self, blobs: Sequence[str]) -> Dict[str, int]:
        result = run_git(
            ["cat-file", "--batch-check=%(objectname) %(objectsize)"],
            cwd=self.cwd,
            input="\n".join(blobs) + "\n",
            check=False,
        )
        sizes: Dict[str, int] = {}
        for line in result.out.splitlines():
            parts = line.split()
            if len(parts) == 2 and parts[1].isdigit():
                sizes[parts[0]] = int(parts[1])
        return sizes

    def list_fingerprints(self, category: str) -> List[str]:
        return [entry.fingerprint for entry in self.list_notes(category)]

    def list_categories(self, prefix: str = "") -> List[str]:
        """Categories (notes refs) under refs/notes/<namespace>/<prefix>, sorted."""
        base = f"refs/notes/{self.namespace}/"
        pattern = base + prefix if prefix else base
        try:
            result = run_git(["for-each-ref", "--format=%(refname)", pattern], cwd=self.cwd, check=False)
        except GitCommandError:
            return []
        if not result.ok:
            return []
        return sorted(line[len(base):] for line in result.out.splitlines() if line.startswith(base))

    # -- writes -----------------------------------------------------------

    def append(
        self,
        category: str,
        fingerprint: str,
        record: BaseModel,
        max_records: Optional[int] = None,
    ) -> RecordResult:
        """Append a record to the log of a fingerprint, creating the log if needed.

        Args:
            category: Notes category
            fingerprint: Object the log is attached to
            record: Record to append (its type is the log's record model)
            max_records: Keep only the newest N records (None keeps all)

        Returns:
            RecordResult; recorded=False carries a code that says why
        """
        try:
            validate_object_id(fingerprint)
            ref = self.notes_ref(category)
        except ValueError as e:
            return RecordResult(recorded=False, fingerprint=str(fingerprint),
                                code=RecordCode.INVALID_INPUT, reason=str(e))

        def add_record(records: List[BaseModel]) -> List[BaseModel]:
            updated = records + [record]
            if max_records is not None and len(updated) > max_records:
                updated = updated[-max_records:]
            return updated

        try:
            attempts = self._update(ref, fingerprint, add_record, type(record))
        except ConflictError as e:
            logger.warning("%s", e)
            return RecordResult(recorded=False, fingerprint=fingerprint,
                                code=RecordCode.APPEND_CONFLICT, reason=str(e), attempts=e.attempts)
        except LogCorruptError as e:
            logger.warning("Refusing to overwrite unreadable note: %s", e)
            return RecordResult(recorded=False, fingerprint=fingerprint,
                                code=RecordCode.LOG_CORRUPT, reason=str(e))
        except GitCommandError as e:
            logger.warning("Failed to write history note for %s: %s", fingerprint, e)
            return RecordResult(recorded=False, fingerprint=fingerprint,
                                code=RecordCode.GIT_ERROR, reason=str(e))

        return RecordResult(recorded=True, fingerprint=fingerprint,
                            code=RecordCode.RECORDED, attempts=attempts)

    def delete(
        self,
        category: str,
        fingerprint: str,
        should_delete: Optional[DeletePredicate] = None,
        record_model: Type[BaseModel] = RunRecord,
    ) -> bool:
        """Remove the whole log of a fingerprint.

        With should_delete, the decision is re-made on the records of the
        exact snapshot being replaced (every retry included), so a record
        appended after the caller looked keeps the log alive.

        Returns:
            True if a log was removed, False if there was none or it was kept

        Raises:
            ConflictError: If concurrent writers kept winning
            GitCommandError: If git failed
            LogCorruptError: If should_delete is given and the note is unreadable
        """
        validate_object_id(fingerprint)
        ref = self.notes_ref(category)
        if should_delete is None:
            return self._update(ref, fingerprint, lambda records: None, None) > 0

        def remove_if(records: List[BaseModel]) -> Optional[List[BaseModel]]:
            return None if should_delete(records) else records

        return self._update(ref, fingerprint, remove_if, record_model, strict=False) > 0

    def delete_category(self, category: str) -> bool:
        """Drop a whole notes ref (every log in the category)."""
        ref = self.notes_ref(category)
        old = resolve_ref(ref, cwd=self.cwd)
        if old is None:
            return False
        return run_git(["update-ref", "-d", ref, old], cwd=self.cwd, check=False).ok

    def _update(
        self,
        ref: str,
        fingerprint: str,
        mutate: Mutation,
        record_model: Optional[Type[BaseModel]],
        strict: bool = True,
    ) -> int:
        """Apply mutate to the log with bounded optimistic retries.

        Returns:
            Number of attempts used, or 0 if nothing needed writing
        """
        for attempt in range(1, self.max_attempts + 1):
            outcome = self._attempt(ref, fingerprint, mutate, record_model, strict)
            if outcome is _Outcome.COMMITTED:
                if attempt > 1:
                    logger.debug("Updated %s for %s after %d attempts", ref, fingerprint, attempt)
                return attempt
            if outcome is _Outcome.UNCHANGED:
                return 0
            if attempt < self.max_attempts:
                delay = self.retry_backoff_ms * attempt * random.uniform(0.5, 1.5) / 1000.0
                time.sleep(delay)
        raise ConflictError(ref, fingerprint, self.max_attempts)

    def _attempt(
        self,
        ref: str,
        fingerprint: str,
        mutate: Mutation,
        record_model: Optional[Type[BaseModel]],
        strict: bool = True,
    ) -> _Outcome:
        old = resolve_ref(ref, cwd=self.cwd)
        scratch = self._scratch_ref()
        try:
            existing: Optional[str] = None
            if old is not None:
                run_git(["update-ref", scratch, old], cwd=self.cwd)
                existing = self._read_note_at(scratch, fingerprint)

            records: List[BaseModel] = []
            if existing is not None and record_model is not None:
                records = decode_records(existing, fingerprint, record_model, strict=strict)

            updated = mutate(records)
            if updated is records:
                return _Outcome.UNCHANGED
            env = self._commit_env()
            if updated is None:
                if existing is None:
                    return _Outcome.UNCHANGED
                run_git(["notes", f"--ref={scratch}", "remove", fingerprint], cwd=self.cwd, env=env)
            else:
                run_git(
                    ["notes", f"--ref={scratch}", "add", "-f", "-F", "-", fingerprint],
                    cwd=self.cwd,
                    env=env,
                    input=encode_records(fingerprint, updated),
                )

            new = resolve_ref(scratch, cwd=self.cwd)
            if new is None:
                raise GitCommandError(["rev-parse", scratch], 1, stderr="scratch notes ref vanished")

            # empty old value: the ref must not exist yet
            swap = run_git(["update-ref", ref, new, old or ""], cwd=self.cwd, check=False)
            if swap.ok:
                return _Outcome.COMMITTED

            moved = resolve_ref(ref, cwd=self.cwd) != old
            logger.debug(
                "Conditional update of %s rejected (%s): %s",
                ref, "ref moved" if moved else "ref busy", swap.stderr,
            )
            return _Outcome.CONFLICT
        finally:
            try:
                run_git(["update-ref", "-d", scratch], cwd=self.cwd, check=False)
            except GitCommandError as e:
                logger.debug("Could not delete scratch ref %s: %s", scratch, e)
