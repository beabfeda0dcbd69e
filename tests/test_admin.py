# tests/test_admin.py
from backend.accounts import unsubscribe_token


def place_order(client):
    client.post("/seed")
    musk = [p for p in client.get("/products").json() if p["name_en"] == "White Musk"][0]
    client.post("/cart/s1/items", json={"product_id": musk["id"]})
    client.post("/checkout/s1/open")
    client.patch("/checkout/s1", json={"method": "pickup"})
    client.post("/checkout/s1/advance")
    client.patch("/checkout/s1", json={"phone": "501234567", "email": "x@y.ae"})
    client.post("/checkout/s1/advance")
    client.patch("/checkout/s1", json={"payment_method": "Cash"})
    client.post("/checkout/s1/advance")
    return client.post("/checkout/s1/submit", json={}).json()["order"]


def test_admin_requires_password(client):
    assert client.get("/admin/orders").status_code == 401
    assert client.get("/admin/orders", headers={"X-Admin-Password": "wrong"}).status_code == 401


def test_order_status_workflow(client, admin_headers):
    order = place_order(client)
    orders = client.get("/admin/orders", headers=admin_headers).json()
    assert [o["id"] for o in orders] == [order["id"]]
    for status in ("prepared", "shipped", "delivered"):
        resp = client.put(f"/admin/orders/{order['id']}/status", json={"status": status}, headers=admin_headers)
        assert resp.json()["status"] == status
    bad = client.put(f"/admin/orders/{order['id']}/status", json={"status": "lost"}, headers=admin_headers)
    assert bad.status_code == 422
    assert client.delete(f"/admin/orders/{order['id']}", headers=admin_headers).json()["deleted"] is True
    assert client.get("/admin/orders", headers=admin_headers).json() == []


def test_coupon_listing_sweeps_used_up_codes(client, store, admin_headers):
    client.post("/admin/coupons", json={"code": "ONCE", "discount_percent": 5}, headers=admin_headers)
    client.post("/admin/coupons", json={"code": "MANY", "discount_percent": 15, "usage_limit": 9}, headers=admin_headers)
    store.collections["coupon"][0]["times_used"] = 1
    codes = [c["code"] for c in client.get("/admin/coupons", headers=admin_headers).json()]
    assert codes == ["MANY"]
    coupon_id = store.collections["coupon"][0]["id"]
    assert client.delete(f"/admin/coupons/{coupon_id}", headers=admin_headers).json()["deleted"] is True
    assert client.delete(f"/admin/coupons/{coupon_id}", headers=admin_headers).status_code == 404


def test_location_costs(client, admin_headers):
    client.post("/seed")
    locs = client.get("/admin/locations", params={"q": "dei"}, headers=admin_headers).json()
    assert [l["city"] for l in locs] == ["Deira"]
    client.put(f"/admin/locations/{locs[0]['id']}", json={"cost": 35}, headers=admin_headers)
    assert [l["cost"] for l in client.get("/locations").json() if l["city"] == "Deira"] == [35]

    updated = client.put("/admin/locations-bulk", json={"emirate": "Ajman", "cost": 12}, headers=admin_headers).json()
    assert updated["updated"] == 2
    created = client.post("/admin/locations", json={"emirate_en": "Fujairah", "city": "Dibba", "cost": 50},
                          headers=admin_headers).json()
    assert created["id"]
    assert "Fujairah" in client.get("/locations/emirates").json()


def test_product_admin(client, admin_headers):
    client.post("/seed")
    created = client.post("/admin/products", json={
        "name_en": "Night Oud", "name_ar": "عود الليل", "price": 210, "category": "Oud", "stock": 2,
    }, headers=admin_headers).json()
    updated = client.put(f"/admin/products/{created['id']}", json={**created, "stock": 0}, headers=admin_headers).json()
    assert updated["stock"] == 0
    assert client.get(f"/products/{created['id']}").json()["badge"] == "out_of_stock"
    listed = client.get("/admin/products", params={"category": "Oud", "sort": "price-desc"}, headers=admin_headers).json()
    assert [p["name_en"] for p in listed] == ["Royal Cambodi Oud", "Night Oud"]
    bad = client.post("/admin/products", json={"name_en": "X", "name_ar": "X", "price": 1, "category": "Soap"},
                      headers=admin_headers)
    assert bad.status_code == 422


def test_store_admin(client, admin_headers):
    created = client.post("/admin/stores", json={"name_en": "Zari Dubai", "name_ar": "زاري دبي"}, headers=admin_headers).json()
    client.put(f"/admin/stores/{created['id']}", json={**created, "product_count": 4}, headers=admin_headers)
    assert client.get("/stores").json()[0]["product_count"] == 4


def test_newsletter_send(client, dispatcher, admin_headers):
    for email in ("a@x.com", "b@x.com", "c@x.com"):
        client.post("/newsletter", json={"email": email})
    dispatcher.failing.add("b@x.com")
    resp = client.post("/admin/newsletter", json={"subject": "Eid sale", "message": "20% off"}, headers=admin_headers)
    assert resp.json()["sent"] == 2
    recipients = sorted(r for _, r, _ in dispatcher.sent)
    assert recipients == ["a@x.com", "c@x.com"]
    variables = dispatcher.sent[0][2]
    assert variables["subject"] == "Eid sale"
    assert variables["unsub_id"] == unsubscribe_token(dispatcher.sent[0][1])


def test_newsletter_requires_content(client, admin_headers):
    resp = client.post("/admin/newsletter", json={"subject": " ", "message": "hi"}, headers=admin_headers)
    assert resp.status_code == 400


def test_newsletter_test_send(client, dispatcher, admin_headers):
    client.post("/admin/newsletter/test", json={"to_email": "me@x.com", "subject": "s", "message": "m"},
                headers=admin_headers)
    assert dispatcher.sent[0][1] == "me@x.com"
    assert dispatcher.sent[0][2]["to_name"] == "Admin Test"


def test_subscriber_admin_and_unsubscribe_link(client, admin_headers):
    client.post("/newsletter", json={"email": "a@x.com", "phone": "0501234567"})
    client.post("/newsletter", json={"email": "b@x.com"})
    subs = client.get("/admin/subscribers", headers=admin_headers).json()
    assert [s["email"] for s in subs] == ["b@x.com", "a@x.com"]
    client.delete(f"/admin/subscribers/{subs[0]['id']}", headers=admin_headers)
    resp = client.get(f"/unsubscribe/{unsubscribe_token('A@x.com')}").json()
    assert resp == {"email": "a@x.com", "removed": True}
    assert client.get("/admin/subscribers", headers=admin_headers).json() == []


def test_product_delete(client, admin_headers):
    client.post("/seed")
    musk = [p for p in client.get("/products").json() if p["name_en"] == "White Musk"][0]
    assert client.delete(f"/admin/products/{musk['id']}", headers=admin_headers).json()["deleted"] is True
    assert client.get(f"/products/{musk['id']}").status_code == 404
    assert client.delete(f"/admin/products/{musk['id']}", headers=admin_headers).status_code == 404
    assert client.delete(f"/admin/products/{musk['id']}").status_code == 401


def test_duplicate_coupon_code_is_rejected(client, admin_headers):
    first = client.post("/admin/coupons", json={"code": "EID", "discount_percent": 10}, headers=admin_headers)
    assert first.status_code == 200
    again = client.post("/admin/coupons", json={"code": " eid ", "discount_percent": 50}, headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["detail"] == "Coupon code already exists"
    assert [c["discount_percent"] for c in client.get("/admin/coupons", headers=admin_headers).json()] == [10]


def test_workshop_admin(client, admin_headers):
    client.post("/seed")
    listed = client.get("/admin/workshops", headers=admin_headers).json()
    assert [w["slug"] for w in listed] == ["w1", "w2"]
    updated = client.put("/admin/workshops/w2", json={"details_en": "Bring your own bottle", "date": "12 May"},
                         headers=admin_headers).json()
    assert updated["details_en"] == "Bring your own bottle"
    assert updated["name_en"] == "Perfume Layering"
    assert updated["available"] is False
    assert client.put("/admin/workshops/w1", json={"available": True}).status_code == 401
