import json
from datetime import date, datetime
from decimal import Decimal

import pytest

from frota import backup, crud, models, schemas


@pytest.fixture
def populated(db, truck, driver, account):
    crud.create_transaction(db, schemas.TransactionCreate.model_validate({
        "description": "Frete", "amount": "1500.00", "type": "INCOME", "status": "PAID",
        "dueDate": "2024-06-10", "accountId": account.id, "vehicleId": truck.id,
    }), created_by="someone-else")
    crud.create_fuel_entry(db, schemas.FuelEntryCreate.model_validate({
        "vehicleId": truck.id, "driverId": driver.id, "date": "2024-06-05",
        "liters": "120.5", "pricePerLiter": "6.129", "mileage": 120500,
    }), created_by="someone-else")
    crud.create_checklist(db, schemas.ChecklistCreate.model_validate({
        "vehicleId": truck.id, "items": [{"id": "i1", "label": "Óleo", "status": "OK"}],
    }))
    return db


def _strip_owner(data):
    return {
        table: sorted(({k: v for k, v in row.items() if k != "created_by"} for row in rows), key=lambda r: r["id"])
        for table, rows in data.items()
    }


class TestExport:
    def test_tables_in_restore_order(self, populated):
        data = backup.export_backup(populated)
        assert list(data) == [
            "vehicles", "drivers", "financial_accounts", "suppliers", "customers",
            "checklists", "transactions", "trips", "fuel_entries",
        ]
        assert len(data["transactions"]) == 2  # freight + fuel expense
        assert data["vehicles"][0]["plate"] == "ABC1D23"

    def test_is_json_serialisable(self, populated):
        data = backup.export_backup(populated)
        json.dumps(data)
        row = data["fuel_entries"][0]
        assert row["date"] == "2024-06-05"
        assert row["price_per_liter"] == pytest.approx(6.129)

    def test_filename(self):
        assert backup.backup_filename(date(2024, 6, 1)) == "backup_frota_2024-06-01.json"


class TestImport:
    def test_round_trip_is_idempotent_except_owner(self, populated):
        before = backup.export_backup(populated)
        restored = backup.import_backup(populated, json.loads(json.dumps(before)), user_id="42")
        after = backup.export_backup(populated)

        assert restored["transactions"] == 2
        assert _strip_owner(after) == _strip_owner(before)
        for rows in after.values():
            assert all(r["created_by"] == "42" for r in rows)

    def test_into_empty_database(self, populated, session_factory):
        data = json.loads(json.dumps(backup.export_backup(populated)))
        populated.query(models.FuelEntry).delete()
        populated.query(models.Transaction).delete()
        populated.commit()

        backup.import_backup(populated, data, user_id="7")
        fuel = populated.query(models.FuelEntry).one()
        assert fuel.total_cost == Decimal("738.54")
        assert fuel.date == date(2024, 6, 5)
        assert populated.get(models.Transaction, fuel.transaction_id).category == "FUEL"

    def test_created_at_is_not_taken_from_the_file(self, db, truck):
        original = truck.created_at
        data = {"vehicles": [{
            "id": truck.id, "type": "CAVALO", "plate": "NEW0A00", "model": "Scania",
            "created_at": "1999-01-01T00:00:00",
        }]}
        backup.import_backup(db, data, user_id="1")
        db.expire_all()
        v = db.get(models.Vehicle, truck.id)
        assert v.plate == "NEW0A00"
        assert v.created_at == original
        assert v.created_at != datetime(1999, 1, 1)

    def test_unknown_tables_and_columns_are_ignored(self, db):
        data = {
            "vehicles": [{"id": "v-new", "type": "CARRETA", "plate": "TRL1234", "axles": 3, "color": "blue"}],
            "spaceships": [{"id": "x"}],
        }
        assert backup.import_backup(db, data, user_id="1") == {"vehicles": 1}
        assert db.get(models.Vehicle, "v-new").axles == 3

    @pytest.mark.parametrize("data", [[], {"vehicles": {"id": "x"}}, {"drivers": [{"name": "sem id"}]}])
    def test_malformed_documents(self, db, data):
        with pytest.raises(ValueError):
            backup.import_backup(db, data, user_id="1")
