"""Small helpers shared by the third-party HTTP clients."""

import httpx


def json_or_empty(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def error_message(response: httpx.Response) -> str:
    """Best-effort human readable error from a failed upstream response."""
    body = json_or_empty(response)
    error = body.get("error") or body.get("err_msg") or body.get("detail") or body.get("message")
    if isinstance(error, dict):
        error = error.get("message")
    return str(error) if error else f"HTTP {response.status_code} {response.reason_phrase}".strip()
