"""
Best-effort batch results.

A batch never aborts on one bad item: every item's outcome is collected
independently into ``succeeded`` or ``failed``.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List

from security.api_errors import APIError


@dataclass
class BatchFailure:
    """One rejected item, with the classified error that rejected it."""
    item_id: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "code": self.code, "message": self.message}


@dataclass
class BatchResult:
    succeeded: List[str] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": list(self.succeeded),
            "failed": [f.to_dict() for f in self.failed],
            "total": self.total,
        }


def run_batch(item_ids: Iterable[str], apply: Callable[[str], Any]) -> BatchResult:
    """
    Apply ``apply`` to every id, collecting classified failures.

    ``apply`` must validate before it mutates, so a rejected item leaves
    no partial change behind. Only APIError is treated as an item failure;
    anything else is a real fault and propagates.
    """
    result = BatchResult()
    for item_id in item_ids:
        try:
            apply(item_id)
        except APIError as exc:
            result.failed.append(BatchFailure(item_id=item_id, code=exc.code.value, message=exc.message))
        else:
            result.succeeded.append(item_id)
    return result
