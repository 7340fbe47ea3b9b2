import logging
from datetime import datetime
from typing import Optional

from ..domain.repositories import InvitationRepository

logger = logging.getLogger(__name__)


async def get_current_occupancy(
    invitation_repo: InvitationRepository,
    *,
    at: datetime,
    location_id: Optional[int] = None,
    exclude_invitation_id: Optional[int] = None,
) -> int:
    """Visitors expected on site at `at` from approved invitations."""
    total = await invitation_repo.sum_expected_visitors(at, location_id, exclude_invitation_id)
    logger.debug("occupancy at %s for location %s: %d", at, location_id, total)
    return int(total)
