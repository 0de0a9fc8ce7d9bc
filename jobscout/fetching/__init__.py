from .scrapingdog import ScrapingdogClient, THROTTLE_STATUSES

__all__ = [
    "ScrapingdogClient",
    "THROTTLE_STATUSES",
]
