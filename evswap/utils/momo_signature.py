"""
MoMo wire-format helpers.

The raw signature string is `key=value` pairs joined with `&` in the exact order
given, with no escaping. extraData uses the same naive format. Both are dictated
by the provider and must not be "fixed".
"""

import hashlib
import hmac
import logging
import time
import uuid
from typing import Dict, Iterable, Mapping, Optional

# Outbound create-payment request, in signing order.
CREATE_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "ipnUrl",
    "orderId",
    "orderInfo",
    "partnerCode",
    "redirectUrl",
    "requestId",
    "requestType",
)

# Inbound callback, in signing order.
CALLBACK_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "message",
    "orderId",
    "orderInfo",
    "orderType",
    "partnerCode",
    "payType",
    "requestId",
    "responseTime",
    "resultCode",
    "transId",
)

SUCCESS_RESULT_CODE = 0


def build_raw_signature(params: Mapping[str, object], fields: Iterable[str]) -> str:
    """Join `fields` from `params` as `k=v&k=v`. Missing values become empty strings."""
    parts = []
    for key in fields:
        value = params.get(key)
        parts.append(f"{key}={'' if value is None else value}")
    return "&".join(parts)


def hmac_sha256(raw: str, secret_key: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), raw.encode("utf-8"), hashlib.sha256).hexdigest()


def sign(params: Mapping[str, object], fields: Iterable[str], secret_key: str) -> str:
    return hmac_sha256(build_raw_signature(params, fields), secret_key)


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected, received)


def generate_order_id() -> str:
    return f"EVS{int(time.time() * 1000)}{uuid.uuid4().hex[:6].upper()}"


def generate_request_id() -> str:
    return uuid.uuid4().hex


def build_extra_data(package_id: int, driver_id: int) -> str:
    return f"packageId={package_id}&driverId={driver_id}"


def parse_extra_data(extra_data: Optional[str]) -> Dict[str, str]:
    """
    Split "packageId=1&driverId=13" into {"packageId": "1", "driverId": "13"}.

    Pairs that do not split into exactly one key and one value are ignored.
    """
    result: Dict[str, str] = {}
    if not extra_data:
        return result
    for pair in extra_data.split("&"):
        key_value = pair.split("=")
        if len(key_value) == 2 and key_value[0]:
            result[key_value[0]] = key_value[1]
    return result


def extract_int(values: Mapping[str, str], key: str) -> Optional[int]:
    value = values.get(key)
    if value is None:
        return None
    # optionally signed ASCII digits only
    digits = value[1:] if value[:1] in ("-", "+") else value
    if not (digits.isascii() and digits.isdigit()):
        logging.error(f"Invalid integer value for extraData key {key}: {value!r}")
        return None
    return int(value)
