"""Citation numbering and in-text marker placement — pure functions, no I/O.

The assistant reports citations out of band: each one carries a character
offset into the final answer and the source files backing that span. These
helpers turn that list into numbered ``ProcessedCitation`` rows and splice
``[n]`` markers into the text at the reported offsets.
"""
import logging
from collections.abc import Iterable

from app.models.assistant import AssistantCitation
from app.models.chat import ChatCompletion, PositionAdjustment, ProcessedCitation

logger = logging.getLogger(__name__)


def format_marker(number: int) -> str:
    return f"[{number}]"


def normalize_citations(
    citations: Iterable[AssistantCitation],
) -> tuple[list[ProcessedCitation], list[PositionAdjustment]]:
    """Number citations in offset order and pair each offset with its number.

    Citations are sorted ascending by position (a missing position sorts as 0).
    The counter starts at 1 and is shared by every reference inside one
    citation, so a citation backed by three pages still produces one marker.

    Rules carried over from the upstream behaviour:
      - References without a ``file`` object are skipped.
      - Citations without a ``references`` list contribute nothing.
      - A citation with no position still emits its references under the
        current counter value but records no adjustment and does not advance
        the counter, so its number is shared with the next positioned citation.
      - A positioned citation only consumes a number when at least one of its
        references was kept, which keeps marker numbers dense (1..N).

    Returns:
        (processed citations in emission order, adjustments ascending by position)
    """
    ordered = sorted(citations, key=lambda c: c.position or 0)

    processed: list[ProcessedCitation] = []
    adjustments: list[PositionAdjustment] = []
    counter = 1

    for citation in ordered:
        if citation.references is None:
            continue

        kept = 0
        for ref in citation.references:
            if ref.file is None:
                continue
            processed.append(
                ProcessedCitation(
                    number=counter,
                    file_name=ref.file.name or "Unknown",
                    file_id=ref.file.id or "",
                    pages=list(ref.pages or []),
                )
            )
            kept += 1

        if citation.position is not None and kept:
            adjustments.append(
                PositionAdjustment(position=citation.position, citation_number=counter)
            )
            counter += 1

    return processed, adjustments


def insert_markers(text: str, adjustments: Iterable[PositionAdjustment]) -> str:
    """Splice ``[n]`` markers into text at each adjustment's offset.

    Insertions run from the highest offset down so that every offset still
    to be processed points at the same character it did in the original text.
    Offsets past the end append (slice semantics clamp them). Equal offsets
    end up adjacent in ascending number order.
    """
    ordered = sorted(adjustments, key=lambda a: a.position)
    for adjustment in reversed(ordered):
        marker = format_marker(adjustment.citation_number)
        position = adjustment.position
        text = text[:position] + marker + text[position:]
    return text


def annotate(
    content: str, citations: Iterable[AssistantCitation]
) -> ChatCompletion:
    """Normalise citations and insert their markers into a complete answer."""
    processed, adjustments = normalize_citations(citations)
    if adjustments:
        logger.debug(
            "Inserting %d citation markers into %d characters",
            len(adjustments),
            len(content),
        )
    return ChatCompletion(
        content=insert_markers(content, adjustments), citations=processed
    )
