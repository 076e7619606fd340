from slowapi import Limiter
from slowapi.util import get_remote_address

# Rate limiter partagé (branché sur app.state dans main.py)
limiter = Limiter(key_func=get_remote_address)
