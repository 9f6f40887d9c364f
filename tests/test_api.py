from datetime import date

import pytest


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/__ping").json() == {"pong": True}


class TestAuth:
    def test_data_routes_require_login(self, client):
        assert client.get("/vehicles").status_code == 401
        assert client.post("/transactions", json={}).status_code == 401

    def test_setup_only_once(self, auth_client):
        assert auth_client.get("/setup").json() == {"needsSetup": False}
        resp = auth_client.post("/setup", data={"username": "other", "password": "x"})
        assert resp.status_code == 409

    def test_login_logout(self, auth_client):
        auth_client.get("/logout")
        assert auth_client.get("/me").status_code == 401
        assert auth_client.post("/login", data={"username": "admin", "password": "wrong"}).status_code == 400
        resp = auth_client.post("/login", data={"username": "admin", "password": "s3cret"})
        assert resp.status_code == 200
        assert auth_client.get("/me").json()["username"] == "admin"

    def test_driver_companion_login(self, auth_client):
        auth_client.post("/drivers", json={"name": "Pedro", "cpf": "987.654.321-00", "password": "1234"})
        auth_client.get("/logout")
        ok = auth_client.post("/drivers/authenticate", json={"cpf": "98765432100", "password": "1234"})
        assert ok.status_code == 200
        assert "passwordHash" not in ok.json() and "password" not in ok.json()
        bad = auth_client.post("/drivers/authenticate", json={"cpf": "98765432100", "password": "nope"})
        assert bad.status_code == 401


class TestVehicles:
    def test_tagged_union_round_trip(self, auth_client):
        truck = auth_client.post("/vehicles", json={
            "type": "CAVALO", "plate": "abc1d23", "model": "Volvo FH", "currentKm": 95001, "nextOilChangeKm": 100000,
        })
        trailer = auth_client.post("/vehicles", json={"type": "CARRETA", "plate": "TRL0001"})
        assert truck.status_code == 201 and trailer.status_code == 201
        assert truck.json()["plate"] == "ABC1D23"
        assert "axles" not in truck.json()
        assert trailer.json()["axles"] == 4
        assert "model" not in trailer.json()

        listed = {v["type"] for v in auth_client.get("/vehicles").json()}
        assert listed == {"CAVALO", "CARRETA"}

        alerts = auth_client.get("/alerts").json()
        assert [a["severity"] for a in alerts["alerts"]] == ["ATTENTION"]
        assert alerts["summary"]["totalVehicles"] == 2

    def test_unknown_type_is_rejected(self, auth_client):
        assert auth_client.post("/vehicles", json={"type": "MOTO", "plate": "X"}).status_code == 422

    def test_oil_change(self, auth_client):
        vid = auth_client.post("/vehicles", json={"type": "CAVALO", "plate": "A", "model": "M"}).json()["id"]
        resp = auth_client.post(f"/vehicles/{vid}/maintenance", json={"currentKm": 100000})
        assert resp.json()["nextOilChangeKm"] == 130000

    def test_missing_vehicle_is_404(self, auth_client):
        assert auth_client.get("/vehicles/nope").status_code == 404


class TestChecklists:
    def test_corrective_action_flow(self, auth_client):
        vid = auth_client.post("/vehicles", json={"type": "CARRETA", "plate": "TRL0002"}).json()["id"]
        checklist = auth_client.post("/checklists", json={
            "vehicleId": vid,
            "items": [{"id": "luz", "label": "Lanternas", "status": "PROBLEM"}, {"id": "pneu", "label": "Pneus"}],
        }).json()
        assert checklist["derivedStatus"] == "PROBLEM"
        assert checklist["type"] == "MAINTENANCE"

        action = auth_client.post(f"/checklists/{checklist['id']}/actions", json={
            "itemId": "luz", "correctedBy": "Oficina", "actionTaken": "Lâmpada trocada",
        }).json()
        assert auth_client.get(f"/checklists/{checklist['id']}").json()["derivedStatus"] == "CORRECTED"

        auth_client.post(f"/corrective-actions/{action['id']}/verify", json={"verifiedBy": "Gerente"})
        fetched = auth_client.get(f"/checklists/{checklist['id']}").json()
        assert fetched["derivedStatus"] == "OK"
        assert fetched["actions"][0]["verified"] is True

    def test_definitions_toggle(self, auth_client):
        d = auth_client.post("/checklist-definitions", json={"name": "Extintor", "category": "Segurança"}).json()
        assert d["isActive"] is True
        assert auth_client.post(f"/checklist-definitions/{d['id']}/toggle").json()["isActive"] is False
        assert auth_client.get("/checklist-definitions", params={"activeOnly": True}).json() == []


class TestFinance:
    @pytest.fixture
    def setup(self, auth_client):
        acc = auth_client.post("/accounts", json={"name": "Caixa", "type": "CASH", "initialBalance": 1000}).json()
        vid = auth_client.post("/vehicles", json={"type": "CAVALO", "plate": "FRT0001", "model": "Scania"}).json()["id"]
        did = auth_client.post("/drivers", json={"name": "Maria", "cpf": "12312312300"}).json()["id"]
        return auth_client, acc, vid, did

    def test_trip_lifecycle_posts_transactions(self, setup):
        client, acc, vid, did = setup
        trip = client.post("/trips", json={
            "vehicleId": vid, "driverId": did, "startLocation": "Campinas", "startKm": 1000, "startDate": "2024-06-01",
        }).json()
        assert trip["status"] == "IN_PROGRESS"

        done = client.post(f"/trips/{trip['id']}/complete", json={
            "endLocation": "Santos", "endKm": 1400, "endDate": "2024-06-02",
            "freightAmount": 1000, "extraExpensesAmount": 100, "fuelAmount": 150,
            "withCommission": True, "createIncome": True, "createExpense": True,
        })
        assert done.status_code == 200
        body = done.json()
        assert len(body["transactions"]) == 3
        assert float(body["trip"]["commissionAmount"]) == 100.0

        again = client.post(f"/trips/{trip['id']}/complete", json={
            "endLocation": "Santos", "endKm": 1400, "endDate": "2024-06-02",
        })
        assert again.status_code == 400

        best = client.get("/reports/trips").json()["best"]
        assert float(best[0]["profit"]) == 650.0

        statement = client.get(f"/reports/driver-statement/{did}", params={"month": "2024-06"}).json()
        assert float(statement["totalPendingDebt"]) == 200.0

    def test_completed_trip_correction(self, setup):
        client, acc, vid, did = setup
        trip = client.post("/trips", json={
            "vehicleId": vid, "startLocation": "Campinas", "startKm": 1000, "startDate": "2024-06-01",
        }).json()
        early = client.patch(f"/trips/{trip['id']}", json={"freightAmount": 500})
        assert early.status_code == 400
        client.post(f"/trips/{trip['id']}/complete", json={
            "endLocation": "Santos", "endKm": 1400, "endDate": "2024-06-02",
            "freightAmount": 1000, "withCommission": True,
        })

        fixed = client.patch(f"/trips/{trip['id']}", json={"freightAmount": 1200, "endLocation": "Guarujá", "startKm": 5})
        assert fixed.status_code == 200
        body = fixed.json()
        assert (body["endLocation"], body["startKm"], body["status"]) == ("Guarujá", 1000, "COMPLETED")
        assert float(body["commissionAmount"]) == 120.0
        assert float(client.get("/reports/trips").json()["best"][0]["profit"]) == 1080.0

    def test_patch_with_null_required_field_is_a_client_error(self, setup):
        client, acc, vid, did = setup
        tx = client.post("/transactions", json={
            "description": "Pedágio", "amount": 80, "type": "EXPENSE", "dueDate": "2024-06-05",
        }).json()
        for url, body in [
            (f"/vehicles/{vid}", {"plate": None}),
            (f"/drivers/{did}", {"name": None}),
            (f"/transactions/{tx['id']}", {"description": None}),
            (f"/transactions/{tx['id']}", {"dueDate": None}),
            (f"/accounts/{acc['id']}", {"initialBalance": None}),
        ]:
            resp = client.patch(url, json=body)
            assert resp.status_code == 400, (url, resp.text)
        assert client.get("/transactions").json()["items"][0]["description"] == "Pedágio"

    def test_paying_twice_is_rejected(self, setup):
        client, acc, vid, did = setup
        tx = client.post("/transactions", json={
            "description": "Frete", "amount": 500, "type": "INCOME", "dueDate": "2024-05-20",
        }).json()
        client.post(f"/transactions/{tx['id']}/pay", json={"paymentDate": "2024-05-21"})
        again = client.post(f"/transactions/{tx['id']}/pay", json={})
        assert again.status_code == 400
        assert client.get("/transactions").json()["items"][0]["paymentDate"] == "2024-05-21"

    def test_transactions_list_filters_and_totals(self, setup):
        client, acc, vid, did = setup
        for body in [
            {"description": "Frete", "amount": 2000, "type": "INCOME", "dueDate": "2024-06-05"},
            {"description": "Diesel", "amount": 300, "type": "EXPENSE", "category": "FUEL", "dueDate": "2024-06-06"},
            {"description": "Cancelado", "amount": 900, "type": "EXPENSE", "status": "CANCELLED", "dueDate": "2024-06-07"},
            {"description": "Julho", "amount": 50, "type": "EXPENSE", "dueDate": "2024-07-01"},
        ]:
            assert client.post("/transactions", json=body).status_code == 201

        listing = client.get("/transactions", params={"month": "2024-06"}).json()
        assert len(listing["items"]) == 3
        assert float(listing["totals"]["expense"]) == 300.0
        assert len(client.get("/transactions", params={"type": "INCOME"}).json()["items"]) == 1
        assert client.get("/transactions", params={"month": "junho"}).status_code == 400

        dre = client.get("/reports/monthly", params={"month": "2024-06"}).json()
        assert dre["company"] == "CLC TRANSPORTES"
        assert float(dre["report"]["revenue"]) == 2000.0
        assert float(dre["report"]["variableCosts"]) == 300.0
        assert float(dre["report"]["fixedCosts"]) == 900.0

    def test_pay_and_balance(self, setup):
        client, acc, vid, did = setup
        tx = client.post("/transactions", json={
            "description": "Frete", "amount": 500, "type": "INCOME", "dueDate": "2024-05-20",
        }).json()
        paid = client.post(f"/transactions/{tx['id']}/pay", json={"paymentDate": "2024-05-21", "accountId": acc["id"]})
        assert paid.json()["status"] == "PAID"

        accounts = client.get("/accounts").json()
        assert float(accounts[0]["balance"]) == 1500.0
        balance = client.get("/reports/balance", params={"month": "2024-06"}).json()
        assert float(balance["openingBalance"]) == 1500.0

    def test_installments_and_bulk_delete(self, setup):
        client, *_ = setup
        rows = client.post("/transactions/installments", json={
            "description": "Seguro", "amount": 300, "type": "EXPENSE", "dueDate": "2024-01-31", "installments": 4,
        }).json()
        assert [r["dueDate"] for r in rows] == ["2024-01-31", "2024-02-29", "2024-03-31", "2024-04-30"]
        resp = client.post("/transactions/bulk-delete", json={"ids": [r["id"] for r in rows]})
        assert resp.json() == {"deleted": 4}

    def test_with_commission(self, setup):
        client, acc, vid, did = setup
        rows = client.post("/transactions/with-commission", json={
            "description": "Frete RJ", "amount": 1000, "type": "INCOME", "dueDate": "2024-06-01", "driverId": did,
        }).json()
        assert [r["type"] for r in rows] == ["INCOME", "EXPENSE"]
        assert float(rows[1]["amount"]) == 100.0

    def test_fuel_entry_and_dashboard(self, setup):
        client, acc, vid, did = setup
        today = date.today().isoformat()
        entry = client.post("/fuel-entries", json={
            "vehicleId": vid, "date": today, "liters": 100, "pricePerLiter": 6, "mileage": 1500, "accountId": acc["id"],
        })
        assert entry.status_code == 201
        assert float(entry.json()["totalCost"]) == 600.0

        dash = client.get("/reports/dashboard").json()
        assert float(dash["fuel"]["cost"]) == 600.0
        assert float(dash["cash"]["currentBalance"]) == 400.0
        assert dash["expensesByCategory"][0]["category"] == "FUEL"
        assert len(dash["monthlyTrend"]) == 6

        client.delete(f"/fuel-entries/{entry.json()['id']}")
        assert client.get("/transactions").json()["items"] == []

    def test_maintenance_task_completion(self, setup):
        client, acc, vid, did = setup
        task = client.post("/maintenance-tasks", json={
            "vehicleId": vid, "description": "Alinhamento", "priority": "HIGH", "cost": 250,
        }).json()
        assert client.get("/alerts").json()["alerts"][0]["severity"] == "URGENT"
        done = client.post(f"/maintenance-tasks/{task['id']}/complete", json={"createExpense": True}).json()
        assert done["status"] == "DONE"
        assert done["transactionId"]
        due = client.get("/reports/due-today").json()
        assert due["count"] == 1


def test_backup_export_and_import(auth_client):
    auth_client.post("/vehicles", json={"type": "CARRETA", "plate": "BKP0001"})
    resp = auth_client.get("/backup/export")
    assert resp.status_code == 200
    assert f"backup_frota_{date.today().isoformat()}.json" in resp.headers["content-disposition"]
    data = resp.json()

    restored = auth_client.post("/backup/import", json=data).json()["restored"]
    assert restored["vehicles"] == 1
    me = auth_client.get("/me").json()
    assert auth_client.get("/backup/export").json()["vehicles"][0]["created_by"] == str(me["id"])


def test_driver_app_checklist_flow(auth_client):
    truck = auth_client.post("/vehicles", json={"type": "CAVALO", "plate": "DRV0001", "model": "Volvo"}).json()
    did = auth_client.post("/drivers", json={"name": "Pedro", "cpf": "55566677788", "password": "1234"}).json()["id"]
    for name, scope in [("Óleo do motor", "TRUCK"), ("Lona", "TRAILER"), ("Pneus", "ALL")]:
        auth_client.post("/checklist-definitions", json={"name": name, "category": "Geral", "vehicleScope": scope})
    auth_client.post("/checklist-definitions", json={"name": "Amarração", "category": "Carga", "type": "LOADING"})
    auth_client.get("/logout")

    assert auth_client.get("/driver-app/vehicles").status_code == 401
    auth_client.post("/drivers/authenticate", json={"cpf": "555.666.777-88", "password": "1234"})
    assert auth_client.get("/driver-app/me").json()["id"] == did
    assert auth_client.get("/vehicles").status_code == 401
    assert [v["plate"] for v in auth_client.get("/driver-app/vehicles").json()] == ["DRV0001"]

    defs = auth_client.get("/driver-app/checklist-definitions", params={"type": "MAINTENANCE", "vehicleId": truck["id"]}).json()
    assert sorted(d["name"] for d in defs) == ["Pneus", "Óleo do motor"]
    loading = auth_client.get("/driver-app/checklist-definitions", params={"type": "LOADING"}).json()
    assert [d["name"] for d in loading] == ["Amarração"]

    submitted = auth_client.post("/driver-app/checklists", json={
        "vehicleId": truck["id"],
        "items": [{"id": d["id"], "name": d["name"], "status": "OK"} for d in defs],
    })
    assert submitted.status_code == 201
    assert (submitted.json()["driverId"], submitted.json()["driverName"]) == (did, "Pedro")

    auth_client.get("/logout")
    auth_client.post("/login", data={"username": "admin", "password": "s3cret"})
    listed = auth_client.get("/checklists", params={"vehicleId": truck["id"]}).json()
    assert [c["driverName"] for c in listed] == ["Pedro"]
