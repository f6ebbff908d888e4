from resonance.models.track import Track
from resonance.models.user import User

__all__ = ["Track", "User"]
