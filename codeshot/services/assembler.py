"""Combine per-image fragments into the final artifact."""

from codeshot.core.errors import MergeUnavailableError
from codeshot.core.logging import get_logger
from codeshot.services.merger import merge_code_fragments
from codeshot.services.recognizer import Fragment

logger = get_logger(__name__)

NO_CODE_PLACEHOLDER = "// No code could be extracted from the images"
FRAGMENT_SEPARATOR = "\n\n"


def concatenate_fragments(rendered: list[str]) -> str:
    """Deterministic fallback: rendered fragments in order, each behind its marker."""
    return FRAGMENT_SEPARATOR.join(rendered)


def assemble_fragments(fragments: list[Fragment]) -> str:
    """Merge ordered fragments into one artifact.

    Never returns an empty string, so "ran but found nothing" stays
    distinguishable from "did not run".

    Raises:
        AssemblyFailedError: If the merge model returned an unusable answer
    """
    if not fragments:
        return NO_CODE_PLACEHOLDER

    rendered = [fragment.render() for fragment in fragments]
    if len(rendered) == 1:
        return rendered[0]

    try:
        return merge_code_fragments(rendered)
    except MergeUnavailableError as exc:
        logger.warning(
            "Merge model unavailable (%s), concatenating %d fragments", exc, len(rendered)
        )
        return concatenate_fragments(rendered)
