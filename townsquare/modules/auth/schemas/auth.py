from townsquare.core.schemas import CamelModel
from townsquare.modules.user_management.schemas.user import User

class SyncResponse(CamelModel):
    user: User
    is_new_user: bool
