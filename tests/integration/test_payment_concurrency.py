import asyncio

import pytest

# Concurrent payments against one invoice must never overpay it


@pytest.mark.asyncio
async def test_concurrent_payments_cannot_overpay(client, auth, client_id):
    created = await client.post(
        "/api/v1/invoices",
        json={
            "client_id": client_id,
            "line_items": [{"description": "Consulting", "quantity": 1, "price": 100}],
        },
        headers=auth,
    )
    assert created.status_code == 201, created.text
    invoice_id = created.json()["id"]
    await client.patch(f"/api/v1/invoices/{invoice_id}", json={"status": "sent"}, headers=auth)

    # 5 x 30.00 against a 100.00 balance: exactly 3 can fit
    async def pay():
        res = await client.post(
            f"/api/v1/invoices/{invoice_id}/payments",
            json={"amount": "30.00"},
            headers=auth,
        )
        return res.status_code

    results = await asyncio.gather(*[pay() for _ in range(5)])

    assert results.count(201) == 3
    assert results.count(422) == 2

    inv = (await client.get(f"/api/v1/invoices/{invoice_id}", headers=auth)).json()
    assert inv["amount_paid"] == "90.00"
    assert inv["status"] == "partially_paid"
    assert len(inv["payments"]) == 3


@pytest.mark.asyncio
async def test_concurrent_invoice_numbers_are_unique(client, auth, client_id):
    async def create():
        res = await client.post(
            "/api/v1/invoices",
            json={
                "client_id": client_id,
                "line_items": [{"description": "Item", "quantity": 1, "price": 5}],
            },
            headers=auth,
        )
        assert res.status_code == 201, res.text
        return res.json()["invoice_number"]

    numbers = await asyncio.gather(*[create() for _ in range(5)])
    assert len(set(numbers)) == 5
