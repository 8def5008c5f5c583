"""Provenance markers embedded in ``order_details``.

Older rows link a division to its original order only through a free-text
note naming the original's id or code, and record return reasons as
"Return reason: <text>". The note was written in Arabic
("تم تقسيمه من الطلب الأصلي <id-or-code>") by the legacy system and in
English ("split from original order <id-or-code>") since. New rows carry
explicit ``parent_order_id`` and ``return_reason`` fields; these helpers
keep the old text readable.
"""

import re

SPLIT_MARKER = "split from original order"
LEGACY_SPLIT_MARKER = "تم تقسيمه من الطلب الأصلي"
SPLIT_MARKERS = (SPLIT_MARKER, LEGACY_SPLIT_MARKER)
RETURN_REASON_PREFIX = "Return reason:"

_SPLIT_RE = re.compile(
    r"(?:{})\s+(\S+)".format("|".join(re.escape(m) for m in SPLIT_MARKERS)),
    re.IGNORECASE,
)
_RETURN_RE = re.compile(rf"{re.escape(RETURN_REASON_PREFIX)}\s*(.+)", re.IGNORECASE)


def split_note(parent_reference: str) -> str:
    return f"Split from original order {parent_reference}"


def parse_parent_reference(order_details: str | None) -> str | None:
    """Return the id or code of the original order named in a split note."""
    if not order_details:
        return None
    match = _SPLIT_RE.search(order_details)
    return match.group(1) if match else None


def is_split_division(order_details: str | None) -> bool:
    return parse_parent_reference(order_details) is not None


def references_parent(order_details: str | None, *references: str | None) -> bool:
    """True when the split note names one of the given ids/codes exactly.

    A substring match alone would tie ``ORD-1`` to divisions of ``ORD-10``.
    """
    found = parse_parent_reference(order_details)
    return found is not None and found in {str(r) for r in references if r}


def parse_return_reason(order_details: str | None) -> str | None:
    if not order_details:
        return None
    match = _RETURN_RE.search(order_details)
    return match.group(1).strip() if match else None
