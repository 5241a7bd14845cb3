"""HTTP API for inkscreen (aiohttp)."""
