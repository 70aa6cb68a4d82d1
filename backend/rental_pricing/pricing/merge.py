# backend/rental_pricing/pricing/merge.py
"""
Field precedence when one value can come from several places.

    manual    typed in by staff for this record
    existing  already stored on the record
    inferred  computed or looked up by the engine

The first source holding a value wins. Callers get the source back so it can
be logged or persisted (e.g. ``price_source`` on an extension).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

Source = Literal["manual", "existing", "inferred"]

PRIORITY: Tuple[Source, ...] = ("manual", "existing", "inferred")


@dataclass(frozen=True)
class Merged:
    value: Any
    source: Optional[Source]


def _present(value: Any) -> bool:
    return value is not None and value != ""


def merge_field(manual: Any = None, existing: Any = None, inferred: Any = None) -> Merged:
    candidates: Dict[Source, Any] = {"manual": manual, "existing": existing, "inferred": inferred}
    for source in PRIORITY:
        if _present(candidates[source]):
            return Merged(candidates[source], source)
    return Merged(None, None)


def merge_fields(
    manual: Optional[Dict[str, Any]] = None,
    existing: Optional[Dict[str, Any]] = None,
    inferred: Optional[Dict[str, Any]] = None,
) -> Dict[str, Merged]:
    """Field-by-field merge over the union of keys."""
    manual, existing, inferred = manual or {}, existing or {}, inferred or {}
    keys = list(dict.fromkeys([*manual, *existing, *inferred]))
    return {k: merge_field(manual.get(k), existing.get(k), inferred.get(k)) for k in keys}
