# tests/test_cart_api.py
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from storefront.models.product import Product

from conftest import sign_in


async def _product(db, slug: str, *, price: str = "19.99", stock: int = 5, active: bool = True) -> Product:
    item = Product(
        name=slug.replace("-", " ").title(),
        slug=slug,
        price_amount=Decimal(price),
        price_currency="USD",
        stock_quantity=stock,
        is_active=active,
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


async def _add(client, headers, product, quantity=1):
    return await client.post(
        "/api/v1/cart/items",
        json={"product_id": str(product.id), "quantity": quantity},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_new_cart_is_empty(client, registry):
    headers = await sign_in(client, registry, "buyer@example.com")

    r = await client.get("/api/v1/cart", headers=headers)
    assert r.status_code == 200
    assert r.json()["items"] == []
    assert r.json()["item_count"] == 0
    assert Decimal(r.json()["subtotal"]) == Decimal("0")


@pytest.mark.asyncio
async def test_cart_needs_sign_in(client):
    r = await client.get("/api/v1/cart")
    assert r.status_code in (401, 403)


@pytest.mark.asyncio
async def test_adding_same_product_merges_quantities(client, registry, db):
    shirt = await _product(db, "linen-shirt", price="19.99", stock=5)
    headers = await sign_in(client, registry, "buyer@example.com")

    assert (await _add(client, headers, shirt)).status_code == 200
    r = await _add(client, headers, shirt, 2)
    assert r.status_code == 200

    body = r.json()
    assert len(body["items"]) == 1
    assert body["items"][0]["quantity"] == 3
    assert body["items"][0]["product"]["slug"] == "linen-shirt"
    assert body["item_count"] == 3
    assert Decimal(body["subtotal"]) == Decimal("59.97")


@pytest.mark.asyncio
async def test_cart_totals_span_lines(client, registry, db):
    shirt = await _product(db, "linen-shirt", price="10.00")
    tote = await _product(db, "canvas-tote", price="2.50")
    headers = await sign_in(client, registry, "buyer@example.com")

    await _add(client, headers, shirt, 1)
    r = await _add(client, headers, tote, 2)

    body = r.json()
    lines = {line["product_id"]: line for line in body["items"]}
    assert Decimal(lines[str(tote.id)]["line_total"]) == Decimal("5.00")
    assert body["item_count"] == 3
    assert Decimal(body["subtotal"]) == Decimal("15.00")


@pytest.mark.asyncio
async def test_cart_is_private_to_its_owner(client, registry, db):
    shirt = await _product(db, "linen-shirt")
    alice = await sign_in(client, registry, "alice@example.com")
    bob = await sign_in(client, registry, "bob@example.com")

    await _add(client, alice, shirt)
    assert (await client.get("/api/v1/cart", headers=bob)).json()["items"] == []


@pytest.mark.asyncio
async def test_cannot_add_unknown_or_archived_product(client, registry, db):
    hat = await _product(db, "old-hat", active=False)
    headers = await sign_in(client, registry, "buyer@example.com")

    assert (await _add(client, headers, hat)).status_code == 404

    r = await client.post("/api/v1/cart/items", json={"product_id": str(uuid.uuid4())}, headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cart_quantity_is_capped_by_stock(client, registry, db):
    shirt = await _product(db, "last-shirts", stock=2)
    headers = await sign_in(client, registry, "buyer@example.com")

    assert (await _add(client, headers, shirt, 2)).status_code == 200

    r = await _add(client, headers, shirt, 1)
    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "INSUFFICIENT_STOCK"
    assert r.json()["detail"]["available"] == 2

    r = await client.patch(f"/api/v1/cart/items/{shirt.id}", json={"quantity": 3}, headers=headers)
    assert r.status_code == 409

    assert (await client.get("/api/v1/cart", headers=headers)).json()["item_count"] == 2


@pytest.mark.asyncio
async def test_update_quantity(client, registry, db):
    shirt = await _product(db, "linen-shirt", stock=10)
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt, 1)

    r = await client.patch(f"/api/v1/cart/items/{shirt.id}", json={"quantity": 4}, headers=headers)
    assert r.status_code == 200
    assert r.json()["items"][0]["quantity"] == 4


@pytest.mark.asyncio
async def test_update_to_zero_removes_line(client, registry, db):
    shirt = await _product(db, "linen-shirt")
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt, 2)

    r = await client.patch(f"/api/v1/cart/items/{shirt.id}", json={"quantity": 0}, headers=headers)
    assert r.status_code == 200
    assert r.json()["items"] == []


@pytest.mark.asyncio
async def test_update_or_remove_missing_line_is_404(client, registry, db):
    shirt = await _product(db, "linen-shirt")
    headers = await sign_in(client, registry, "buyer@example.com")

    r = await client.patch(f"/api/v1/cart/items/{shirt.id}", json={"quantity": 1}, headers=headers)
    assert r.status_code == 404

    r = await client.delete(f"/api/v1/cart/items/{shirt.id}", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_remove_line(client, registry, db):
    shirt = await _product(db, "linen-shirt")
    tote = await _product(db, "canvas-tote")
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt)
    await _add(client, headers, tote)

    r = await client.delete(f"/api/v1/cart/items/{shirt.id}", headers=headers)
    assert r.status_code == 204

    items = (await client.get("/api/v1/cart", headers=headers)).json()["items"]
    assert [line["product_id"] for line in items] == [str(tote.id)]


@pytest.mark.asyncio
async def test_clear_cart(client, registry, db):
    shirt = await _product(db, "linen-shirt")
    tote = await _product(db, "canvas-tote")
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt)
    await _add(client, headers, tote)

    r = await client.delete("/api/v1/cart", headers=headers)
    assert r.status_code == 204
    assert (await client.get("/api/v1/cart", headers=headers)).json()["items"] == []


# ---------------------------------------------------------
# Checkout from the cart
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_checkout_without_items_orders_the_cart(client, registry, db):
    shirt = await _product(db, "linen-shirt", price="19.99", stock=5)
    tote = await _product(db, "canvas-tote", price="5.00", stock=5)
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt, 2)
    await _add(client, headers, tote, 1)

    r = await client.post("/api/v1/orders", json={"shipping_address": "1 Market Street, Springfield"}, headers=headers)
    assert r.status_code == 201, r.text
    body = r.json()
    assert Decimal(body["total_amount"]) == Decimal("44.98")
    assert sorted(i["product_name"] for i in body["items"]) == ["Canvas Tote", "Linen Shirt"]

    await db.refresh(shirt)
    assert shirt.stock_quantity == 3

    assert (await client.get("/api/v1/cart", headers=headers)).json()["items"] == []


@pytest.mark.asyncio
async def test_checkout_with_empty_cart_rejected(client, registry):
    headers = await sign_in(client, registry, "buyer@example.com")

    r = await client.post("/api/v1/orders", json={"shipping_address": "1 Market Street, Springfield"}, headers=headers)
    assert r.status_code == 400
    assert (await client.get("/api/v1/orders", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_failed_cart_checkout_keeps_the_cart(client, registry, db):
    shirt = await _product(db, "linen-shirt", stock=2)
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt, 2)

    # Stock sold elsewhere after the line was added.
    shirt.stock_quantity = 1
    await db.commit()

    r = await client.post("/api/v1/orders", json={"shipping_address": "1 Market Street, Springfield"}, headers=headers)
    assert r.status_code == 409

    assert (await client.get("/api/v1/cart", headers=headers)).json()["item_count"] == 2


@pytest.mark.asyncio
async def test_explicit_items_leave_the_cart_alone(client, registry, db):
    shirt = await _product(db, "linen-shirt", stock=5)
    tote = await _product(db, "canvas-tote", stock=5)
    headers = await sign_in(client, registry, "buyer@example.com")
    await _add(client, headers, shirt)

    r = await client.post(
        "/api/v1/orders",
        json={"items": [{"product_id": str(tote.id), "quantity": 1}], "shipping_address": "1 Market Street, Springfield"},
        headers=headers,
    )
    assert r.status_code == 201

    items = (await client.get("/api/v1/cart", headers=headers)).json()["items"]
    assert [line["product_id"] for line in items] == [str(shirt.id)]
