from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from utils.env import get_env_str

# Configured in app.py via init_app; RATELIMIT_ENABLED is off under tests
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri=get_env_str("RATELIMIT_STORAGE_URI", default="memory://"),
)
