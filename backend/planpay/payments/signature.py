"""Gateway message authentication.

Click signs every callback with an MD5 digest over a fixed ordering of
request fields plus the shared secret. Payme authenticates with HTTP Basic
credentials instead (see ``planpay.auth.basic``).
"""

import hashlib
import hmac
from collections.abc import Iterable
from decimal import Decimal


def format_amount(amount: Decimal | int | float | str) -> str:
    """Render an amount the way Click's signing side renders a parsed number.

    ``1000.00`` becomes ``1000`` and ``1000.50`` becomes ``1000.5``.
    """
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def md5_mac(parts: Iterable[object]) -> str:
    """Lowercase hex MD5 over the plain concatenation of ``parts``."""
    payload = "".join("" if part is None else str(part) for part in parts)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def verify(canonical_params: Iterable[object], provided_mac: str | None, secret: str) -> bool:
    """Check ``provided_mac`` against the MAC of ``canonical_params``.

    ``canonical_params`` must already be in the gateway's order and contain
    the secret at the gateway's position. An empty secret never verifies.
    """
    if not secret or not provided_mac:
        return False
    expected = md5_mac(canonical_params)
    return hmac.compare_digest(expected, provided_mac.lower())


def click_sign_params(
    click_trans_id: int | str,
    service_id: int | str,
    secret_key: str,
    merchant_trans_id: str,
    amount: Decimal | int | float | str,
    action: int | str,
    sign_time: str,
    merchant_prepare_id: int | str | None = None,
) -> list[object]:
    """Click's canonical field order. ``merchant_prepare_id`` is only set for complete."""
    params: list[object] = [click_trans_id, service_id, secret_key, merchant_trans_id]
    if merchant_prepare_id is not None:
        params.append(merchant_prepare_id)
    params.extend([format_amount(amount), action, sign_time])
    return params


def click_sign(
    click_trans_id: int | str,
    service_id: int | str,
    secret_key: str,
    merchant_trans_id: str,
    amount: Decimal | int | float | str,
    action: int | str,
    sign_time: str,
    merchant_prepare_id: int | str | None = None,
) -> str:
    """Compute the ``sign_string`` Click would send for these fields."""
    return md5_mac(
        click_sign_params(
            click_trans_id,
            service_id,
            secret_key,
            merchant_trans_id,
            amount,
            action,
            sign_time,
            merchant_prepare_id=merchant_prepare_id,
        )
    )
