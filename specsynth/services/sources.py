"""Source selection and contribution weights."""

from typing import Protocol, Sequence

from specsynth.errors import NoSourcesError
from specsynth.schemas.domain import SourceContribution, SourceSpecification
from specsynth.utils.logging import log, get_logger

MODULE = "sources"
logger = get_logger()

DEFAULT_WEIGHT = 1.0


class SourceReader(Protocol):
    async def find_published_by_handle(self, shopify_handle: str) -> list[SourceSpecification]: ...


async def fetch_sources(reader: SourceReader, shopify_handle: str) -> list[SourceSpecification]:
    """Published sources for a handle, as a snapshot in fetch order.

    Raises:
        NoSourcesError: nothing published for the handle.
    """
    sources = await reader.find_published_by_handle(shopify_handle)
    if not sources:
        log.warning(logger, MODULE, "fetch_failed", "No published sources for product",
                    shopify_handle=shopify_handle)
        raise NoSourcesError(
            f"No source specifications found for product: {shopify_handle}",
            shopify_handle=shopify_handle,
            operation="fetch_sources",
        )

    log.info(logger, MODULE, "fetch_done", "Fetched published sources",
             shopify_handle=shopify_handle, sources=len(sources),
             source_ids=[s.id for s in sources])
    return sources


def compute_contributions(sources: Sequence[SourceSpecification]) -> list[SourceContribution]:
    """Equal split: weight 1.0 and score 1/n for each of the n sources."""
    if not sources:
        return []
    share = 1.0 / len(sources)
    return [
        SourceContribution(
            source_spec_id=source.id,
            weight_factor=DEFAULT_WEIGHT,
            contribution_score=share,
        )
        for source in sources
    ]
