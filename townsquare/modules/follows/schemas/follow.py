from typing import Optional

from townsquare.core.schemas import CamelModel

class FollowRequest(CamelModel):
    # Optional so a missing id is reported as a 400 by the service
    user_id: Optional[str] = None
