"""Feed decoders producing normalized trip update and alert entities."""

from transit_rt.services.feeds.entities import (
    AlertEntity,
    DecodedFeed,
    FeedDecodeError,
    MalformedFeedError,
    TripUpdateEntity,
)
from transit_rt.services.feeds.gtfs_rt import GtfsRtDecoder
from transit_rt.services.feeds.registry import DECODERS, FeedDecoder, get_decoder

__all__ = [
    "DECODERS",
    "AlertEntity",
    "DecodedFeed",
    "FeedDecodeError",
    "FeedDecoder",
    "GtfsRtDecoder",
    "MalformedFeedError",
    "TripUpdateEntity",
    "get_decoder",
]
