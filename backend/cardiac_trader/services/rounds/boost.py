import logging
from typing import Optional

from ..dto import TimeBoostResult

logger = logging.getLogger(__name__)


def apply_time_boost(controller, response: TimeBoostResult) -> Optional[int]:
    """Feed a time-boost response from the game service into ``controller``.

    Only a successful response with a positive ``seconds_added`` extends the
    round; the round keeps its original start reference. Returns the new
    remaining time, or ``None`` when the response changed nothing.
    """
    if not response.success:
        logger.info(f"[boost-rejected] session={controller.session_id} message={response.message!r}")
        return None
    if response.seconds_added <= 0:
        logger.info(f"[boost-empty] session={controller.session_id} seconds_added={response.seconds_added}")
        return None
    return controller.extend_round(response.seconds_added)
