"""Market data polling, caching and paging."""
