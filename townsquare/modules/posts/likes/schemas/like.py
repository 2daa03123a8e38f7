from townsquare.core.schemas import CamelModel

class LikeToggle(CamelModel):
    """Result of a like toggle"""
    liked: bool
    like_count: int
