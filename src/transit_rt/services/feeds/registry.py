"""Decoder selection per configured source."""

from __future__ import annotations

from datetime import tzinfo
from typing import Callable, Dict

from transit_rt.services.feeds.entities import DecodedFeed
from transit_rt.services.feeds.gtfs_rt import decode_gtfs_rt
from transit_rt.services.feeds.siri import decode_tampere_siri, decode_turku_siri

FeedDecoder = Callable[[bytes, tzinfo], DecodedFeed]

DECODERS: Dict[str, FeedDecoder] = {
    "gtfs_rt": decode_gtfs_rt,
    "turku_siri": decode_turku_siri,
    "tampere_siri": decode_tampere_siri,
}


def get_decoder(name: str) -> FeedDecoder:
    """Return the decoder registered under ``name``.

    Raises:
        KeyError: If no decoder has that name.
    """
    try:
        return DECODERS[name]
    except KeyError:
        msg = f"Unknown feed decoder: {name!r}"
        raise KeyError(msg) from None
