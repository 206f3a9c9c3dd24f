"""Caller identity and the authorization gate for shop orders.

A caller is either an administrator, identified by the shared ``X-Api-Key``,
or a merchant, identified by a signed bearer token carrying their merchant
id. Merchants may only act on orders of shops they own.
"""

import hmac
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core import signing

from .domain import Forbidden, NotFound, ShopDirectoryPort


@dataclass(frozen=True)
class Caller:
    """Identity of the party issuing a request.

    Attributes:
        merchant_id: Merchant identity for token-authenticated callers.
        is_admin: True when the caller presented the administrative key.
    """

    merchant_id: Optional[str] = None
    is_admin: bool = False


ADMIN = Caller(is_admin=True)


def _token_salt() -> str:
    return getattr(settings, "MERCHANT_TOKEN_SALT", "orders.merchant")


def issue_merchant_token(merchant_id: str) -> str:
    """Return a signed bearer token for ``merchant_id``."""
    return signing.dumps({"merchant_id": str(merchant_id)}, salt=_token_salt())


def caller_from_request(request) -> Optional[Caller]:
    """Resolve the caller from request headers.

    ``X-Api-Key`` matching ``settings.API_KEY`` yields an admin caller. An
    ``Authorization: Bearer <token>`` header with a valid, unexpired merchant
    token yields a merchant caller. Anything else yields None.
    """
    key = (request.headers.get("X-Api-Key") or "").strip()
    env_key = (getattr(settings, "API_KEY", "") or "").strip()
    if key and env_key and hmac.compare_digest(key, env_key):
        return ADMIN

    auth = (request.headers.get("Authorization") or "").strip()
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    try:
        payload = signing.loads(
            token.strip(),
            salt=_token_salt(),
            max_age=getattr(settings, "MERCHANT_TOKEN_MAX_AGE", 30 * 24 * 3600),
        )
    except signing.BadSignature:
        return None
    merchant_id = payload.get("merchant_id") if isinstance(payload, dict) else None
    if not merchant_id:
        return None
    return Caller(merchant_id=str(merchant_id))


class AuthorizationGate:
    """Decides whether a caller may mutate a shop's orders."""

    def __init__(self, shops: ShopDirectoryPort):
        self.shops = shops

    def authorize(self, caller: Optional[Caller], shop_id: str) -> bool:
        """Return True when ``caller`` may mutate orders of ``shop_id``.

        Admins are always allowed. Merchants are allowed only for shops whose
        recorded owner is themselves; a shop without an owner is admin-only.
        """
        if caller is None:
            return False
        if caller.is_admin:
            return True
        shop = self.shops.get(shop_id)
        if shop is None or not shop.owner_id or not caller.merchant_id:
            return False
        return str(shop.owner_id) == str(caller.merchant_id)

    def ensure_can_mutate(self, caller: Optional[Caller], shop_id: str) -> None:
        """Raise unless ``caller`` may mutate orders of ``shop_id``.

        Raises:
            NotFound: If the shop does not exist.
            Forbidden: If the caller is not the owner nor an admin.
        """
        if self.shops.get(shop_id) is None:
            raise NotFound(f"Shop {shop_id} not found")
        if not self.authorize(caller, shop_id):
            raise Forbidden("Caller may not act on this shop's orders")
