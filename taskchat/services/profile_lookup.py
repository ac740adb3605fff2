import logging
from typing import Dict, Iterable, Optional

from taskchat.repositories.profile_repository import ProfileRepository
from taskchat.schemas.profile import ProfileRow
from taskchat.utils.errors import STORE_ERRORS


logger = logging.getLogger(__name__)


async def lookup_profiles(profiles: ProfileRepository, user_ids: Iterable[str]) -> Dict[str, Optional[ProfileRow]]:
    # one query per distinct user; a miss or failed lookup maps to None
    found: Dict[str, Optional[ProfileRow]] = {}
    for user_id in dict.fromkeys(user_ids):
        try:
            found[user_id] = await profiles.get(user_id)
        except STORE_ERRORS:
            logger.warning("Profile lookup failed for %s", user_id, exc_info=True)
            found[user_id] = None
    return found


def display_name(profile: Optional[ProfileRow], placeholder: str) -> str:
    if profile is None or not profile.username:
        return placeholder
    return profile.username
