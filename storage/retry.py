"""
Retry/backoff and rate-limit-aware HTTP helper.
Both service clients send every request through perform_request_with_retries so that
transient failures (connection errors, 429/503, exhausted rate limits) are retried uniformly.
"""

import os
import time
import random
import logging
import email.utils
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
import requests

logger = logging.getLogger(__name__)

# retry/backoff defaults from environment
DEFAULT_MAX_RETRIES = int(os.getenv("TRACKER_MAX_RETRIES", "3"))
DEFAULT_BACKOFF_BASE = float(os.getenv("TRACKER_BACKOFF_BASE", "0.5"))
_env_jitter = os.getenv("TRACKER_BACKOFF_JITTER")
DEFAULT_BACKOFF_JITTER = float(_env_jitter) if _env_jitter is not None and _env_jitter != "" else None
DEFAULT_MAX_BACKOFF = float(os.getenv("TRACKER_MAX_BACKOFF", "60.0"))
DEFAULT_TIMEOUT = float(os.getenv("TRACKER_HTTP_TIMEOUT", "30.0"))

# runtime-overrides
_runtime_max_retries: Optional[int] = None
_runtime_backoff_base: Optional[float] = None
_runtime_backoff_jitter: Optional[float] = None
_runtime_max_backoff: Optional[float] = None


def configure_retry(
    max_retries: Optional[int] = None, backoff_base: Optional[float] = None, backoff_jitter: Optional[float] = None, max_backoff: Optional[float] = None
):
    """Configure retry/backoff defaults at runtime (e.g. from CLI)."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff
    if max_retries is not None:
        _runtime_max_retries = int(max_retries)
    if backoff_base is not None:
        _runtime_backoff_base = float(backoff_base)
    if backoff_jitter is not None:
        _runtime_backoff_jitter = float(backoff_jitter)
    if max_backoff is not None:
        _runtime_max_backoff = float(max_backoff)


def reset_retry():
    """Drop every runtime override and fall back to the environment defaults."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff
    _runtime_max_retries = None
    _runtime_backoff_base = None
    _runtime_backoff_jitter = None
    _runtime_max_backoff = None


def _parse_retry_after(raw_ra: Optional[str]) -> Optional[float]:
    if not raw_ra:
        return None
    try:
        return float(raw_ra)
    except (TypeError, ValueError):
        try:
            dt = email.utils.parsedate_to_datetime(raw_ra)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _header_number(headers: Dict[str, Any], key: str, cast):
    val = headers.get(key)
    if val is None:
        return None
    try:
        return cast(val)
    except (TypeError, ValueError):
        return None


def _parse_rate_headers(resp) -> Tuple[Optional[float], Optional[int], Optional[float]]:
    headers = getattr(resp, 'headers', None) or {}
    ra = _parse_retry_after(headers.get('Retry-After'))
    rl_remaining = _header_number(headers, 'X-RateLimit-Remaining', int)
    rl_reset = _header_number(headers, 'X-RateLimit-Reset', float)
    return ra, rl_remaining, rl_reset


def _resolve_backoff_params(backoff_base: Optional[float], backoff_jitter: Optional[float], max_backoff: Optional[float]):
    if backoff_base is not None:
        base = float(backoff_base)
    elif _runtime_backoff_base is not None:
        base = float(_runtime_backoff_base)
    else:
        base = float(DEFAULT_BACKOFF_BASE)

    if backoff_jitter is not None:
        jitter = float(backoff_jitter)
    elif _runtime_backoff_jitter is not None:
        jitter = float(_runtime_backoff_jitter)
    elif DEFAULT_BACKOFF_JITTER is not None:
        jitter = float(DEFAULT_BACKOFF_JITTER)
    else:
        jitter = base

    if max_backoff is not None:
        cap = float(max_backoff)
    elif _runtime_max_backoff is not None:
        cap = float(_runtime_max_backoff)
    else:
        cap = float(DEFAULT_MAX_BACKOFF)

    return base, jitter, cap


def _parse_body(resp):
    try:
        return resp.json()
    except ValueError:
        return getattr(resp, 'text', None)


def _should_retry_response(status_code: int, ra: Optional[float], rl_remaining: Optional[int]) -> bool:
    if status_code in (429, 503):
        return True
    if 200 <= status_code < 300:
        return False
    if ra is not None:
        return True
    if rl_remaining is not None and rl_remaining <= 0:
        return True
    return False


def _compute_wait_seconds(ra: Optional[float], rl_reset: Optional[float], backoff: float, jitter: float, cap: float) -> float:
    if ra is not None:
        return min(float(ra) + random.uniform(0, jitter), cap)
    if rl_reset:
        wait = max(0.0, float(rl_reset) - time.time())
        return min(wait + random.uniform(0, jitter), cap)
    return min(backoff + random.uniform(0, jitter), cap)


def _attempt_request_once(method: str, url: str, request_kwargs: Dict[str, Any]):
    try:
        resp = requests.request(method, url, **request_kwargs)
    except requests.RequestException as ex:
        return 'error', {'exception': str(ex)}

    status = getattr(resp, 'status_code', 0)
    ra, rl_remaining, rl_reset = _parse_rate_headers(resp)

    if 200 <= status < 300:
        return 'success', {'body': _parse_body(resp), 'status': status}

    if _should_retry_response(status, ra, rl_remaining):
        return 'retry', {'status': status, 'ra': ra, 'rl_reset': rl_reset, 'body': _parse_body(resp)}

    return 'fail', {'body': _parse_body(resp), 'status': status}


def perform_request_with_retries(
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
    json_body: Any = None,
    auth: Optional[Tuple[str, str]] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
) -> Dict[str, Any]:
    """Perform one logical request, retrying transient failures.

    Returns a dict ``{'response': body, 'status': int, 'timestamp': float}``. A status of 0
    means the request never produced an HTTP response (connection error, timeout).
    Non-retryable HTTP failures are returned, not raised; callers decide what is fatal.
    """
    base, jitter, cap = _resolve_backoff_params(backoff_base, backoff_jitter, max_backoff)
    if _runtime_max_retries is not None:
        attempts = int(_runtime_max_retries)
    elif max_retries is not None:
        attempts = int(max_retries)
    else:
        attempts = DEFAULT_MAX_RETRIES
    attempts = max(1, attempts)

    request_kwargs: Dict[str, Any] = {
        'headers': headers or {},
        'params': params or {},
        'timeout': timeout if timeout is not None else DEFAULT_TIMEOUT,
    }
    if json_body is not None:
        request_kwargs['json'] = json_body
    if auth is not None:
        request_kwargs['auth'] = auth

    backoff = base
    last_result: Dict[str, Any] = {'response': None, 'status': 0, 'timestamp': time.time()}
    for attempt in range(attempts):
        outcome, data = _attempt_request_once(method, url, request_kwargs)

        if outcome == 'success' or outcome == 'fail':
            return {'response': data.get('body'), 'status': data.get('status', 0), 'timestamp': time.time()}

        if outcome == 'error':
            logger.debug("%s %s failed (attempt %d/%d): %s", method, url, attempt + 1, attempts, data.get('exception'))
            last_result = {'response': data.get('exception'), 'status': 0, 'timestamp': time.time()}
            wait_seconds = min(backoff + random.uniform(0, jitter), cap)
        else:
            logger.debug("%s %s throttled with %s (attempt %d/%d)", method, url, data.get('status'), attempt + 1, attempts)
            last_result = {'response': data.get('body'), 'status': data.get('status', 0), 'timestamp': time.time()}
            wait_seconds = _compute_wait_seconds(data.get('ra'), data.get('rl_reset'), backoff, jitter, cap)

        backoff = min(backoff * 2, cap)
        if attempt + 1 < attempts:
            time.sleep(wait_seconds)

    return last_result


__all__ = ["configure_retry", "reset_retry", "perform_request_with_retries"]
