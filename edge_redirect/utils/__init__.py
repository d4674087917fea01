import copy
from typing import Optional

SENSITIVE_HEADERS = ("authorization", "cookie")


def mask_token(text: str, token: Optional[str]) -> str:
    return text.replace(token, f"{token[:4]}****") if token else text


def masked_event(event: dict) -> dict:
    """Copy of an edge event with credential headers masked, safe to log."""
    masked = copy.deepcopy(event)
    for record in masked.get("Records") or []:
        request = ((record or {}).get("cf") or {}).get("request") or {}
        headers = request.get("headers") or {}
        for name in SENSITIVE_HEADERS:
            for entry in headers.get(name) or []:
                if isinstance(entry, dict) and isinstance(entry.get("value"), str):
                    entry["value"] = mask_token(entry["value"], entry["value"])
    return masked
