from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from loki_downloader.core.models import LogRecord

OUTPUT_FILE_EXTENSION = ".jsonl"


def output_file_name(file_number: int) -> str:
    return f"{file_number}{OUTPUT_FILE_EXTENSION}"


@dataclass(frozen=True)
class PendingWrite:
    """Records destined for one output file, not yet written."""

    file_name: str
    records: Tuple[LogRecord, ...]


@dataclass(frozen=True)
class ChunkPlan:
    """Writes for one batch and the file position after they are applied."""

    writes: Tuple[PendingWrite, ...]
    file_number: int
    space_in_current_file: Optional[int]

    def saved_in_current_file(self, per_file_limit: Optional[int], previously_saved: int) -> int:
        """Records in the current file once the plan is committed."""
        if per_file_limit is None:
            return previously_saved + sum(len(w.records) for w in self.writes)
        return per_file_limit - (self.space_in_current_file or 0)


def space_left(per_file_limit: Optional[int], saved_in_file: int) -> Optional[int]:
    """Remaining capacity of the current file, None when files are unbounded."""
    if per_file_limit is None:
        return None
    return max(0, per_file_limit - saved_in_file)


def plan_chunks(
    records: Sequence[LogRecord],
    file_number: int,
    space_in_current_file: Optional[int],
    per_file_limit: Optional[int],
) -> ChunkPlan:
    """
    Split a batch across sequentially numbered files.

    Each file takes at most ``per_file_limit`` records. A full file is only
    rolled over when there are records left to place, so the plan never holds
    an empty write and ``file_number`` always names a file that exists.
    ``per_file_limit=None`` keeps everything in a single growing file.

    Pure: nothing is written until the caller commits the plan.
    """
    if per_file_limit is not None and per_file_limit < 1:
        raise ValueError("per_file_limit must be at least 1")

    writes: List[PendingWrite] = []
    saved = 0
    total = len(records)

    while saved < total:
        if per_file_limit is None:
            writes.append(PendingWrite(output_file_name(file_number), tuple(records[saved:])))
            saved = total
            break

        if not space_in_current_file:
            file_number += 1
            space_in_current_file = per_file_limit
            continue

        take = min(space_in_current_file, total - saved)
        writes.append(PendingWrite(output_file_name(file_number), tuple(records[saved : saved + take])))
        saved += take
        space_in_current_file -= take

    return ChunkPlan(
        writes=tuple(writes),
        file_number=file_number,
        space_in_current_file=space_in_current_file if per_file_limit is not None else None,
    )
