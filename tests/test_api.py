import inspect
import io
import os

from fastapi.testclient import TestClient
from PIL import Image

from auth import get_optional_user
from conftest import checkout_payload
from errors import ExternalServiceError
from main import create_app


def place_order(client, oil, quantity=2, **kwargs):
    resp = client.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": quantity}]),
                       **kwargs)
    assert resp.status_code == 201, resp.text
    return resp.json()["order"]


def png_file(name="bukti.png"):
    out = io.BytesIO()
    Image.new("RGB", (16, 16), (10, 120, 200)).save(out, format="PNG")
    return (name, out.getvalue(), "image/png")


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "ok"
    assert client.get("/test").json()["database"] == "connected"


def test_catalog(client, oil):
    names = [p["name"] for p in client.get("/products").json()]
    assert names == sorted(names)
    assert len(names) == 3
    assert client.get(f"/products/{oil['id']}").json()["price"] == 210000
    assert client.get("/products/65f0c0ffee0000000000beef").status_code == 404
    assert client.get("/products/garbage").status_code == 404


def test_shipping_endpoints(client):
    rates = client.get("/shipping/rates").json()
    assert {(r["courier"], r["service"]) for r in rates} == {("JNE", "REG"), ("JNE", "YES"), ("SiCepat", "REG")}

    body = {"weight_gram": 2500, "dims": {"l": 10, "w": 10, "h": 10}, "courier": "JNE", "service": "REG"}
    quote = client.post("/shipping/estimate", json=body).json()
    assert quote["billable_weight_kg"] == 3
    assert quote["cost"] == 36000

    body["service"] = "OKE"
    resp = client.post("/shipping/estimate", json=body)
    assert resp.status_code == 409
    assert "JNE OKE" in resp.json()["detail"]


def test_checkout_creates_order_and_invoice(client, blobs, oil):
    resp = client.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": 2}]))
    assert resp.status_code == 201
    body = resp.json()
    order = body["order"]

    # 1840 g and a 6x6x48 stack: 2 kg billable on JNE REG
    assert body["shipping"]["cost"] == 28000
    assert order["subtotal"] == 420000
    assert order["total"] == 448000
    assert order["status"] == "PENDING_PAYMENT"
    assert order["user_id"] is None
    assert order["address"]["city"] == "Bandung"
    assert order["invoice_url"] == f"/media/invoices/{order['id']}.pdf"
    assert resp.headers["location"] == f"/orders/{order['id']}"
    assert os.path.exists(os.path.join(blobs.root, "invoices", f"{order['id']}.pdf"))

    detail = client.get(f"/orders/{order['id']}").json()
    assert detail["items"] == [{
        "product_id": oil["id"], "product_name": oil["name"], "price_each": 210000, "quantity": 2,
    }]
    assert client.get(order["invoice_url"]).content.startswith(b"%PDF")


def test_checkout_with_custom_dimensions(client, oil):
    payload = checkout_payload([{"product_id": oil["id"], "quantity": 1}], logistic="SiCepat|REG",
                               dims={"l": 40, "w": 30, "h": 20})
    body = client.post("/checkout", json=payload).json()
    # 24000 / 6000 = 4 kg volumetric
    assert body["shipping"]["billable_weight_kg"] == 4
    assert body["order"]["shipping_cost"] == 22000 + 3 * 8500


def test_checkout_errors(client, db, oil):
    resp = client.post("/checkout", json=checkout_payload([]))
    assert resp.status_code == 400

    resp = client.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": 1}], logistic="JNE"))
    assert resp.status_code == 400

    resp = client.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": 1}],
                                                          logistic="POS|KILAT"))
    assert resp.status_code == 409

    resp = client.post("/checkout", json=checkout_payload([{"product_id": "65f0c0ffee0000000000beef", "quantity": 1}]))
    assert resp.status_code == 404

    resp = client.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": 19}]))
    assert resp.status_code == 409
    assert "Insufficient stock" in resp.json()["detail"]

    resp = client.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": 1}],
                                                          customer_email="not-an-email"))
    assert resp.status_code == 422

    assert db["order"].count_documents({}) == 0


def test_unknown_order(client):
    assert client.get("/orders/65f0c0ffee0000000000beef").status_code == 404
    assert client.get("/track/JNE000").status_code == 404


def test_payment_proof_upload(client, db, blobs, oil):
    order = place_order(client, oil)
    resp = client.post(f"/orders/{order['id']}/payment-proof", files={"payment_proof": png_file()})
    assert resp.status_code == 200
    url = resp.json()["proof_url"]
    assert url.startswith(f"/media/payment-proofs/{order['id']}-")
    assert url.endswith("-bukti.webp")
    assert client.get(f"/orders/{order['id']}").json()["order"]["payment_proof_url"] == url

    resp = client.post(f"/orders/{order['id']}/payment-proof",
                       files={"payment_proof": ("notes.txt", b"hello", "text/plain")})
    assert resp.status_code == 400

    resp = client.post("/orders/65f0c0ffee0000000000beef/payment-proof", files={"payment_proof": png_file()})
    assert resp.status_code == 404


def test_register_login_and_me(client, db):
    resp = client.post("/auth/register", json={"email": "rina@example.com", "password": "secret123"})
    assert resp.status_code == 201
    resp = client.post("/auth/register", json={"email": "rina@example.com", "password": "secret123"})
    assert resp.status_code == 400

    resp = client.post("/auth/token", data={"username": "rina@example.com", "password": "wrong-pass"})
    assert resp.status_code == 400

    resp = client.post("/auth/token", data={"username": "rina@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert "session" in resp.cookies

    # The session cookie alone authenticates
    me = client.get("/me").json()
    assert me["email"] == "rina@example.com"
    assert me["role"] == "customer"

    client.post("/auth/logout")
    client.cookies.clear()
    assert client.get("/me").status_code == 401


def test_profile(client, customer_headers):
    profile = client.get("/profile", headers=customer_headers).json()
    assert profile["name"] == "Andra Putra"
    assert profile["role"] == "customer"

    update = {"name": "Andra P.", "phone": "0812", "address": {
        "line1": "Jl. Asia Afrika 1", "city": "Bandung", "province": "Jawa Barat", "postal_code": "40111"}}
    profile = client.put("/profile", json=update, headers=customer_headers).json()
    assert profile["name"] == "Andra P."
    assert profile["address"]["line1"] == "Jl. Asia Afrika 1"
    assert profile["role"] == "customer"


def test_logged_in_checkout_lists_in_my_orders(client, customer_headers, oil):
    order = place_order(client, oil, headers=customer_headers)
    assert order["user_id"] is not None
    mine = client.get("/my/orders", headers=customer_headers).json()
    assert [o["id"] for o in mine] == [order["id"]]


def test_admin_routes_require_admin(db, blobs, customer_headers):
    with TestClient(create_app(db=db, blobs=blobs)) as anonymous:
        assert anonymous.get("/admin/orders").status_code == 401
        assert anonymous.get("/my/orders").status_code == 401
        assert anonymous.get("/admin/orders", headers=customer_headers).status_code == 403


def test_admin_status_accepts_any_transition(client, admin_headers, oil):
    order = place_order(client, oil)
    url = f"/admin/orders/{order['id']}/status"
    for status in ("DELIVERED", "PENDING_PAYMENT", "SHIPPED"):
        resp = client.patch(url, json={"status": status}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == status

    assert client.patch(url, json={"status": "CANCELLED"}, headers=admin_headers).status_code == 422
    assert client.patch("/admin/orders/65f0c0ffee0000000000beef/status", json={"status": "PAID"},
                        headers=admin_headers).status_code == 404

    shipped = client.get("/admin/orders", params={"status": "SHIPPED"}, headers=admin_headers).json()
    assert [o["id"] for o in shipped] == [order["id"]]
    assert client.get("/admin/orders", params={"status": "PAID"}, headers=admin_headers).json() == []


def test_admin_tracking_appends_history(client, admin_headers, oil):
    order = place_order(client, oil)
    url = f"/admin/orders/{order['id']}/tracking"
    client.post(url, json={"tracking_number": "JNE123456789ID", "status": "Packing"}, headers=admin_headers)
    resp = client.post(url, json={"tracking_number": "JNE123456789ID", "description": "Left Bandung hub"},
                       headers=admin_headers)
    assert resp.status_code == 200

    tracked = client.get("/track/JNE123456789ID").json()
    assert tracked["id"] == order["id"]
    assert [(e["status"], e["description"]) for e in tracked["tracking_history"]] == [
        ("Packing", None),
        ("Update", "Left Bandung hub"),
    ]


def test_admin_regenerates_invoice(client, db, blobs, admin_headers, oil):
    order = place_order(client, oil)
    path = os.path.join(blobs.root, "invoices", f"{order['id']}.pdf")
    os.remove(path)
    resp = client.post(f"/admin/orders/{order['id']}/invoice", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["invoice_url"] == f"/media/invoices/{order['id']}.pdf"
    assert os.path.exists(path)

    detail = client.get(f"/admin/orders/{order['id']}", headers=admin_headers).json()
    assert detail["order"]["id"] == order["id"]
    assert len(detail["items"]) == 1


def test_admin_creates_product_with_images(client, blobs, admin_headers):
    data = {"name": "Oil Filter OF-101", "price": "45000", "weight_gram": "300", "stock": "12", "height_cm": "9"}
    resp = client.post("/admin/products", data=data, files=[("images", png_file("filter front.png"))],
                       headers=admin_headers)
    assert resp.status_code == 201
    product = resp.json()
    assert product["price"] == 45000
    assert product["length_cm"] is None
    assert len(product["images"]) == 1
    assert "-filter_front.png" in product["images"][0]
    assert client.get(product["images"][0]).status_code == 200

    data["weight_gram"] = "0"
    resp = client.post("/admin/products", data=data, files=[("images", png_file())], headers=admin_headers)
    assert resp.status_code == 400


def test_admin_seed_and_stats(client, admin_headers):
    assert client.post("/admin/products/seed", json={}, headers=admin_headers).json() == {"inserted": 3}
    assert client.post("/admin/products/seed", json={}, headers=admin_headers).json()["inserted"] == 0
    assert client.post("/admin/products/seed", json={"force": True}, headers=admin_headers).json() == {"inserted": 3}

    stats = client.get("/admin/stats", headers=admin_headers).json()
    assert stats["products"] == 3
    assert stats["orders"] == 0
    assert stats["users"] == 1


class UnreachableBlobStore:
    def put(self, path, data, content_type):
        raise ExternalServiceError(f"Failed to upload {path}")


def test_blob_failure_is_a_server_error(db, oil):
    with TestClient(create_app(db=db, blobs=UnreachableBlobStore())) as broken:
        resp = broken.post("/checkout", json=checkout_payload([{"product_id": oil["id"], "quantity": 1}]))
    assert resp.status_code == 500
    # The order stays so an admin can regenerate the invoice
    order = db["order"].find_one()
    assert resp.json() == {"detail": f"Failed to upload invoices/{order['_id']}.pdf"}


def test_regenerating_invoice_for_vanished_order(client, admin_headers, oil, monkeypatch):
    order = place_order(client, oil)
    monkeypatch.setattr(client.app.state.store, "set_invoice_url", lambda order_id, url: None)
    resp = client.post(f"/admin/orders/{order['id']}/invoice", headers=admin_headers)
    assert resp.status_code == 404


def test_caller_lookup_runs_in_threadpool():
    # Blocking storage reads must not run on the event loop
    assert not inspect.iscoroutinefunction(get_optional_user)
