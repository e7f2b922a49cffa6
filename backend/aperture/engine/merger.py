"""
Record merger.

Folds batches of :class:`~aperture.models.records.WorkloadRecord` into a
hostname-keyed accumulator.  Merging is pure, associative and idempotent
per hostname, which is what lets concurrent expansions interleave safely:
whichever batch lands second simply unions into the first.

There is no negative reconciliation.  A workload once observed stays in the
accumulator until the owning session resets it.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from aperture.models.records import WorkloadRecord


def merge_records(
    existing: Sequence[WorkloadRecord],
    incoming: Iterable[WorkloadRecord],
) -> list[WorkloadRecord]:
    """Merge *incoming* records into *existing* and return a new list.

    Records are matched by case-insensitive hostname.  On a match the
    existing record's ``services``, ``portfolios`` and ``components`` gain
    any names they lack (first-seen order preserved) and
    ``service_details`` gains descriptors for services it has no descriptor
    for.  Unmatched records are appended.  Neither input is mutated.

    Args:
        existing: The current accumulator.
        incoming: Newly fetched records, possibly overlapping each other.

    Returns:
        The merged accumulator.  ``is_multi_use`` is derived, so it always
        reflects the merged membership lists.
    """
    merged: list[WorkloadRecord] = [record.model_copy() for record in existing]
    positions: dict[str, int] = {}
    for index, record in enumerate(merged):
        positions.setdefault(record.key, index)

    for record in incoming:
        index = positions.get(record.key)
        if index is None:
            positions[record.key] = len(merged)
            merged.append(record.model_copy(deep=True))
            continue
        merged[index] = _merge_pair(merged[index], record)

    return merged


def _merge_pair(base: WorkloadRecord, other: WorkloadRecord) -> WorkloadRecord:
    """Union the membership lists of *other* into a copy of *base*."""
    services = list(base.services)
    for name in other.services:
        if name not in services:
            services.append(name)

    details = list(base.service_details)
    known_details = {d.name for d in details}
    for detail in other.service_details:
        if detail.name not in known_details:
            known_details.add(detail.name)
            details.append(detail.model_copy())

    portfolios = list(base.portfolios)
    for name in other.portfolios:
        if name not in portfolios:
            portfolios.append(name)

    components = list(base.components)
    known_components = {c.name for c in components}
    for component in other.components:
        if component.name not in known_components:
            known_components.add(component.name)
            components.append(component.model_copy())

    return base.model_copy(
        update={
            "services": services,
            "service_details": details,
            "portfolios": portfolios,
            "components": components,
        }
    )
