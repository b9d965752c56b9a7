from __future__ import annotations
import logging
from typing import Any, Dict

from services.balances import resync_balances

logger = logging.getLogger("uvicorn")


async def run_resync(shopkeeper_id=None) -> Dict[str, Any]:
    """
    Recompute cached customer / wholesaler totals from bills and payments.
    Drifted entities are logged by the balance service.
    """
    res = await resync_balances(shopkeeper_id)
    if res["drifted"]:
        logger.warning(f"[scheduler] resync corrected {res['drifted']} of {res['entities']} entities")
    return res
