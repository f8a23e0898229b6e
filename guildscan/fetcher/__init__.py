"""Remote statistics fetcher."""

from guildscan.fetcher.client import GuildCountFetcher, extract_count, parse_retry_after

__all__ = ["GuildCountFetcher", "extract_count", "parse_retry_after"]
