def add(client, product_id, quantity, price, user_id="cust-1"):
    return client.post("/api/cart/add", json={"userId": user_id, "productId": product_id, "quantity": quantity, "price": price})


def test_get_without_cart_is_empty(client):
    resp = client.get("/api/cart", params={"userId": "cust-1"})

    assert resp.status_code == 200
    assert resp.json()["items"] == []
    assert resp.json()["total_price"] == 0


def test_add_merges_same_product(client):
    assert add(client, "prod-a", 2, 50).status_code == 201
    resp = add(client, "prod-a", 3, 50)

    assert resp.status_code == 201
    cart = resp.json()
    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["total_price"] == 250


def test_snake_case_body_accepted(client):
    resp = client.post("/api/cart/add", json={"user_id": "cust-1", "product_id": "prod-a", "quantity": 1, "unit_price": 9.5})
    assert resp.status_code == 201
    assert resp.json()["total_price"] == 9.5


def test_update_item(client):
    item_id = add(client, "prod-x", 4, 10).json()["items"][0]["item_id"]

    resp = client.put(f"/api/cart/update/{item_id}", json={"quantity": 1})

    assert resp.status_code == 200
    assert resp.json()["total_price"] == 10


def test_update_rejects_zero_quantity(client):
    item_id = add(client, "prod-x", 4, 10).json()["items"][0]["item_id"]
    assert client.put(f"/api/cart/update/{item_id}", json={"quantity": 0}).status_code == 422


def test_update_unknown_item(client):
    resp = client.put("/api/cart/update/unknown", json={"quantity": 1})

    assert resp.status_code == 404
    assert resp.json()["message"] == "Item not found"


def test_remove_item(client):
    add(client, "prod-x", 2, 10)
    cart = add(client, "prod-y", 1, 5).json()
    item_id = next(i["item_id"] for i in cart["items"] if i["product_id"] == "prod-x")

    assert client.delete(f"/api/cart/remove/{item_id}").status_code == 200
    cart = client.get("/api/cart", params={"userId": "cust-1"}).json()
    assert [i["product_id"] for i in cart["items"]] == ["prod-y"]
    assert cart["total_price"] == 5


def test_remove_unknown_item(client):
    assert client.delete("/api/cart/remove/unknown").status_code == 404


def test_clear(client):
    add(client, "prod-x", 2, 10)

    resp = client.delete("/api/cart/clear", params={"userId": "cust-1"})

    assert resp.status_code == 200
    assert resp.json() == {"message": "Cart cleared"}
    cart = client.get("/api/cart", params={"userId": "cust-1"}).json()
    assert cart["items"] == []
    assert cart["total_price"] == 0


def test_get_resolves_products(client, customer, product_body):
    _, headers = customer
    product = client.post("/api/products/add", json=product_body, headers=headers).json()["product"]
    add(client, product["_id"], 2, 120)

    cart = client.get("/api/cart", params={"userId": "cust-1"}).json()

    assert cart["items"][0]["product"]["name"] == "Basmati Rice"
    assert cart["total_price"] == 240


def test_user_id_is_required(client):
    assert client.get("/api/cart").status_code == 422


def test_sub_cent_price_rejected(client):
    assert add(client, "prod-a", 1, 0.333).status_code == 422
    assert client.get("/api/cart", params={"userId": "cust-1"}).json()["items"] == []


def test_totals_over_cent_prices(client):
    add(client, "prod-a", 1, 0.33)
    resp = add(client, "prod-a", 1, 0.33)

    assert resp.json()["total_price"] == 0.66
