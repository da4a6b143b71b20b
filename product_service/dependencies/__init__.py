# Request dependencies
from .auth import get_current_user_id

__all__ = ["get_current_user_id"]
