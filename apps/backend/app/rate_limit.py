"""
IP-based rate limiting for the parse endpoints.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.config import Settings

# Scraping is expensive: 10 parse requests per minute per client by default
RATE_LIMIT_PARSE = Settings.rate_limit_parse()


def client_ip(request: Request) -> str:
    """Client address, honouring the proxy headers set by our load balancer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return get_remote_address(request)


limiter = Limiter(key_func=client_ip)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={'error': f'Too many requests ({exc.detail}). Please try again later.', 'rateLimited': True},
    )
