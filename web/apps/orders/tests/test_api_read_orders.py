import uuid

import pytest

from apps.orders.models import OrderModel, ShopModel

CREATE_URL = "/api/orders/"
DETAIL_URL = "/api/orders/{oid}/"
SHOP_ORDERS_URL = "/api/shops/{sid}/orders/"


def _create(client, shop, name="Asha"):
    payload = {
        "shop": str(shop.id),
        "customer_name": name,
        "phone": "+919811111111",
        "items": [{"name": "Pizza", "qty": 1}],
    }
    r = client.post(CREATE_URL, data=payload, content_type="application/json")
    assert r.status_code == 201
    return r.json()


@pytest.mark.django_db
def test_get_order_by_id_returns_200_and_payload(client, shop, messenger, hub):
    created = _create(client, shop)
    r = client.get(DETAIL_URL.format(oid=created["id"]))
    assert r.status_code == 200
    body = r.json()
    assert body["id"] == created["id"]
    assert body["shop_id"] == str(shop.id)
    assert body["status"] == "received"
    assert body["total"] == 150


@pytest.mark.django_db
def test_get_order_not_found_returns_404(client):
    r = client.get(DETAIL_URL.format(oid=str(uuid.uuid4())))
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_menu_price_change_does_not_alter_stored_order(client, shop, messenger, hub):
    created = _create(client, shop)
    shop.menu_items.filter(name="Pizza").update(price=999)
    body = client.get(DETAIL_URL.format(oid=created["id"])).json()
    assert body["total"] == 150
    assert body["items"][0]["unit_price"] == 150


@pytest.mark.django_db
def test_shop_orders_paginated_newest_first(client, shop, messenger, hub, owner_headers):
    for name in ("first", "second", "third"):
        _create(client, shop, name)

    r = client.get(SHOP_ORDERS_URL.format(sid=shop.id) + "?page=1&page_size=2", **owner_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 3
    assert body["page_size"] == 2
    assert [o["sequence_number"] for o in body["results"]] == [3, 2]

    r2 = client.get(SHOP_ORDERS_URL.format(sid=shop.id) + "?page=2&page_size=2", **owner_headers)
    assert [o["customer_name"] for o in r2.json()["results"]] == ["first"]


@pytest.mark.django_db
def test_shop_orders_requires_credentials(client, shop):
    r = client.get(SHOP_ORDERS_URL.format(sid=shop.id))
    assert r.status_code == 401
    assert r.json()["detail"] == "UNAUTHORIZED"


@pytest.mark.django_db
def test_shop_orders_forbidden_for_other_merchant(client, shop, stranger_headers):
    r = client.get(SHOP_ORDERS_URL.format(sid=shop.id), **stranger_headers)
    assert r.status_code == 403
    assert r.json()["detail"] == "FORBIDDEN"


@pytest.mark.django_db
def test_shop_orders_admin_sees_ownerless_shop(client, admin_headers, stranger_headers):
    orphan = ShopModel.objects.create(name="No Owner", phone="+919800000009")
    assert client.get(SHOP_ORDERS_URL.format(sid=orphan.id), **admin_headers).status_code == 200
    assert client.get(SHOP_ORDERS_URL.format(sid=orphan.id), **stranger_headers).status_code == 403


@pytest.mark.django_db
def test_shop_orders_unknown_shop_returns_404(client, admin_headers):
    r = client.get(SHOP_ORDERS_URL.format(sid=uuid.uuid4()), **admin_headers)
    assert r.status_code == 404
    assert OrderModel.objects.count() == 0


@pytest.mark.django_db
@pytest.mark.parametrize("query", ["?page_size=0", "?page=abc", "?page=0", "?page_size=-5", "?page_size=1000"])
def test_shop_orders_bad_paging_returns_400(client, shop, admin_headers, query):
    r = client.get(SHOP_ORDERS_URL.format(sid=shop.id) + query, **admin_headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "VALIDATION_ERROR"


@pytest.mark.django_db
def test_shop_orders_pages_reach_full_history(client, shop, admin_headers):
    OrderModel.objects.bulk_create(
        OrderModel(
            sequence_number=n,
            shop=shop,
            customer_name=f"c{n}",
            phone="+919811111111",
            items=[{"item_id": None, "name": "Pizza", "qty": 1, "unit_price": 150}],
            total=150,
        )
        for n in range(1, 206)
    )

    r = client.get(SHOP_ORDERS_URL.format(sid=shop.id) + "?page_size=50", **admin_headers)
    assert r.json()["count"] == 205
    assert r.json()["results"][0]["sequence_number"] == 205

    last = client.get(SHOP_ORDERS_URL.format(sid=shop.id) + "?page=5&page_size=50", **admin_headers).json()
    assert last["page"] == 5
    assert [o["sequence_number"] for o in last["results"]] == [5, 4, 3, 2, 1]

    # past the end falls back to the last page
    beyond = client.get(SHOP_ORDERS_URL.format(sid=shop.id) + "?page=99&page_size=50", **admin_headers).json()
    assert beyond["page"] == 5
