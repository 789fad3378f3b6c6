"""
rate_limit.py
=============
Per-IP request limiter shared by the routes and the app.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
