"""
HTTP surface tests: status codes and JSON shapes for each blueprint.
"""

from app.models import Customer, Product


def _settle(client, product, quantity=3, payment=None, bill_number="INV-1", **cart_extra):
    cart = {
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price_cents": product.selling_price_cents}],
        **cart_extra,
    }
    return client.post("/api/bills/settle", json={
        "bill_number": bill_number,
        "cart": cart,
        "payment": payment or {"method": "cash", "paid_amount_cents": 1000000},
    })


class TestBills:
    def test_settle_worked_example(self, client, db_session, make_product):
        product = make_product(stock=10, price_cents=10000)

        resp = client.post("/api/bills/settle", json={
            "bill_number": "INV-1",
            "cart": {
                "items": [{"product_id": product.id, "quantity": 3, "unit_price_cents": 10000, "discount_cents": 3000}],
                "order_discount_type": "percentage",
                "order_discount_value": 10,
            },
            "payment": {"method": "cash", "paid_amount_cents": 30000},
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["total_cents"] == 24300
        assert body["change_amount_cents"] == 5700
        assert body["status"] == "completed"
        assert len(body["items"]) == 1
        assert db_session.get(Product, product.id).stock == 7

    def test_lookup_and_change(self, client, db_session, make_product):
        product = make_product(stock=10, price_cents=24300)
        _settle(client, product, quantity=1, payment={"method": "cash", "paid_amount_cents": 30000})

        resp = client.get("/api/bills/INV-1")
        assert resp.status_code == 200
        assert resp.get_json()["bill_number"] == "INV-1"

        change = client.get("/api/bills/INV-1/change").get_json()
        assert change["change_cents"] == 5700
        assert change["breakdown"] == [
            {"denomination_cents": 5000, "count": 1},
            {"denomination_cents": 500, "count": 1},
            {"denomination_cents": 200, "count": 1},
        ]

        listing = client.get("/api/bills?status=completed").get_json()
        assert listing["count"] == 1

    def test_next_bill_number(self, client, db_session):
        first = client.post("/api/bills/next-number")
        second = client.post("/api/bills/next-number")

        assert first.status_code == 201
        assert first.get_json()["bill_number"].startswith("INV-")
        assert first.get_json()["bill_number"] != second.get_json()["bill_number"]

    def test_unknown_bill_is_404(self, client, db_session):
        resp = client.get("/api/bills/INV-404")

        assert resp.status_code == 404
        assert resp.get_json()["code"] == "bill_not_found"

    def test_insufficient_stock_is_409(self, client, db_session, make_product):
        product = make_product(stock=1)

        resp = _settle(client, product, quantity=2)

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "insufficient_stock"
        assert db_session.get(Product, product.id).stock == 1

    def test_underpayment_is_400(self, client, db_session, make_product):
        product = make_product(stock=5, price_cents=1000)

        resp = _settle(client, product, quantity=1, payment={"method": "cash", "paid_amount_cents": 999})

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "insufficient_payment"

    def test_oversized_tender_is_400(self, client, db_session, make_product):
        product = make_product(stock=5, price_cents=1000)

        resp = _settle(client, product, quantity=1, payment={"method": "cash", "paid_amount_cents": 10**15})

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"
        assert db_session.get(Product, product.id).stock == 5

    def test_bad_cart_is_400(self, client, db_session):
        resp = client.post("/api/bills/settle", json={"bill_number": "INV-1", "cart": {"items": []}})

        assert resp.status_code == 400

    def test_credit_limit_is_409(self, client, db_session, make_product, make_customer):
        product = make_product(stock=5, price_cents=50000)
        customer = make_customer(credit_limit_cents=10000)

        resp = _settle(client, product, quantity=1, payment={"method": "credit"}, customer_id=customer.id)

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "credit_limit_exceeded"

    def test_hold_resume_delete(self, client, db_session, make_product):
        product = make_product(stock=5, price_cents=1000)

        held = client.post("/api/bills/hold", json={
            "bill_number": "INV-7",
            "cart": {"items": [{"product_id": product.id, "quantity": 2, "unit_price_cents": 1000}]},
        })
        assert held.status_code == 201
        bill_id = held.get_json()["id"]

        assert client.get("/api/bills/held").get_json()["count"] == 1

        resumed = client.get(f"/api/bills/held/{bill_id}").get_json()
        assert resumed["totals"]["total_cents"] == 2000
        assert resumed["cart"]["items"][0]["quantity"] == 2

        assert client.get("/api/bills/INV-7/change").status_code == 400

        assert client.delete(f"/api/bills/held/{bill_id}").status_code == 200
        assert client.get(f"/api/bills/held/{bill_id}").status_code == 404


class TestReturns:
    def test_return_and_returnable(self, client, db_session, make_product):
        product = make_product(stock=10, price_cents=10000)
        sale = _settle(client, product, quantity=3).get_json()
        item_id = sale["items"][0]["id"]

        resp = client.post("/api/returns", json={
            "original_bill_number": "INV-1",
            "items": [{"bill_item_id": item_id, "quantity": 2}],
            "refund_method": "cash",
            "return_bill_number": "RET-1",
        })

        assert resp.status_code == 201
        assert resp.get_json()["total_cents"] == -20000
        assert db_session.get(Product, product.id).stock == 9

        returnable = client.get("/api/returns/INV-1/returnable").get_json()
        assert returnable["items"][0]["returnable_quantity"] == 1

    def test_missing_original_is_400(self, client, db_session):
        assert client.post("/api/returns", json={}).status_code == 400


class TestPurchases:
    def test_create_receive_and_cancel(self, client, db_session, supplier, make_product):
        product = make_product(stock=0)

        created = client.post("/api/purchases", json={
            "purchase_order_no": "PO-1",
            "supplier_id": supplier.id,
            "items": [{"product_id": product.id, "quantity": 10, "cost_price_cents": 250}],
        })
        assert created.status_code == 201
        po = created.get_json()
        item_id = po["items"][0]["id"]

        received = client.post(f"/api/purchases/{po['id']}/receive", json={
            "items": [{"purchase_item_id": item_id, "received_quantity": 6}],
        })
        assert received.status_code == 200
        assert received.get_json()["purchase_order"]["status"] == "received"
        assert db_session.get(Product, product.id).stock == 6

        cancelled = client.post(f"/api/purchases/{po['id']}/cancel", json={"reason": "late"})
        assert cancelled.status_code == 409

    def test_next_purchase_order_no(self, client, db_session):
        resp = client.post("/api/purchases/next-number")

        assert resp.status_code == 201
        assert resp.get_json()["purchase_order_no"].startswith("PO-")

    def test_unknown_order_is_404(self, client, db_session):
        assert client.get("/api/purchases/999").status_code == 404


class TestInventoryAndCustomers:
    def test_adjust_and_verify(self, client, db_session, make_product):
        product = make_product(stock=4, reorder_level=5)

        resp = client.post(f"/api/inventory/{product.id}/adjust", json={"quantity_delta": -1, "reason": "damaged"})
        assert resp.status_code == 201
        assert resp.get_json()["new_stock"] == 3

        assert client.get(f"/api/inventory/{product.id}/verify").get_json()["consistent"] is True
        assert client.get("/api/inventory/low-stock").get_json()["count"] == 1

        too_much = client.post(f"/api/inventory/{product.id}/adjust", json={"quantity_delta": -10})
        assert too_much.status_code == 409

    def test_credit_payment(self, client, db_session, make_customer):
        customer = make_customer()
        customer.current_credit_cents = 3000
        db_session.commit()

        resp = client.post(f"/api/customers/{customer.id}/credit-payments", json={"amount_cents": 1000})
        assert resp.status_code == 201
        assert resp.get_json()["new_balance_cents"] == 2000

        over = client.post(f"/api/customers/{customer.id}/credit-payments", json={"amount_cents": 5000})
        assert over.status_code == 409
        assert db_session.get(Customer, customer.id).current_credit_cents == 2000

        entries = client.get(f"/api/customers/{customer.id}/credit-entries").get_json()
        assert len(entries["entries"]) == 1


def test_health(client, db_session):
    resp = client.get("/api/system/health")

    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"]["status"] == "healthy"
