"""USD to BRL price conversion for display."""

import asyncio
import logging
from typing import Optional

import aiohttp

from startupprice.config.settings import AppConfig, get_config

logger = logging.getLogger(__name__)


async def get_usd_to_brl_rate(config: Optional[AppConfig] = None) -> float:
    """
    Fetch the current USD->BRL rate from the public exchange-rate API.

    Conservative fallback: on any fetch or decode error, log a warning and
    return the configured fallback rate.

    Returns:
        BRL per USD
    """
    config = config or get_config()
    fallback = config.fallback_usd_brl_rate

    try:
        timeout = aiohttp.ClientTimeout(total=10)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(config.exchange_rate_url) as response:
                response.raise_for_status()
                data = await response.json()

        rate = data["rates"]["BRL"]
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Exchange rate fetch failed, using {fallback}: {e}")
        return fallback

    if not isinstance(rate, (int, float)) or rate <= 0:
        logger.warning(f"Exchange rate missing or invalid ({rate!r}), using {fallback}")
        return fallback

    return float(rate)


async def convert_usd_to_brl(usd_amount: float, config: Optional[AppConfig] = None) -> float:
    """Convert a USD amount to BRL at the current rate."""
    rate = await get_usd_to_brl_rate(config)
    return usd_amount * rate


def format_brl_price(amount: float) -> str:
    """Format an amount Brazilian style, e.g. 27.5 -> 'R$27,50'."""
    return f"R${amount:.2f}".replace(".", ",")
