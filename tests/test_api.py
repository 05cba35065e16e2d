import datetime
import io

from openpyxl import Workbook
from sqlalchemy.exc import OperationalError

from visitor_register.identifiers import NUMBER_PATTERN
from visitor_register.main import EntryOut


def create(client, payload):
    response = client.post("/api/entries", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def parse(value):
    return datetime.datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


def test_health_check(client):
    assert client.get("/").json() == {"message": "Healthy"}


def test_create_entry(client, visitor):
    body = create(client, {**visitor, "status": "exited"})
    assert body["status"] == "entered"
    assert body["exit_time"] is None
    assert NUMBER_PATTERN.match(body["number"])
    assert body["name"] == "Alice"


def test_create_entry_validation_error(client):
    response = client.post("/api/entries", json={"name": "Alice"})
    assert response.status_code == 400
    assert response.json()["fields"] == ["address"]

    response = client.post("/api/entries", json={"name": " ", "address": "123 Rd"})
    assert response.status_code == 400
    assert response.json()["fields"] == ["name"]


def test_entry_schema_reads_orm_objects(store, visitor):
    entry = store.create(visitor)
    out = EntryOut.model_validate(entry)
    assert out.id == entry.id
    assert out.status == "entered"


def test_round_trip_by_id(client, visitor):
    created = create(client, visitor)
    fetched = client.get(f"/api/entries/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json() == created


def test_get_unknown_entry(client):
    response = client.get("/api/entries/unknown")
    assert response.status_code == 404
    assert response.json()["error"] == "Entry not found"


def test_list_with_filters(client, visitor):
    ids = [create(client, {**visitor, "name": f"V{i}"})["id"] for i in range(3)]
    client.patch(f"/api/entries/{ids[1]}/exit")

    everything = client.get("/api/entries").json()
    entered = client.get("/api/entries", params={"filter": "entered"}).json()
    exited = client.get("/api/entries", params={"filter": "exited"}).json()

    assert {e["id"] for e in everything} == set(ids)
    assert {e["id"] for e in entered} == {ids[0], ids[2]}
    assert [e["id"] for e in exited] == [ids[1]]
    stamps = [parse(e["created_at"]) for e in everything]
    assert stamps == sorted(stamps, reverse=True)
    for entry in everything:
        assert (entry["exit_time"] is not None) == (entry["status"] == "exited")


def test_list_rejects_unknown_filter(client):
    response = client.get("/api/entries", params={"filter": "inside"})
    assert response.status_code == 400
    assert response.json()["fields"] == ["filter"]


def test_bulk_create(client, visitor):
    response = client.post("/api/entries/bulk", json=[visitor, {**visitor, "name": "Bob"}])
    assert response.status_code == 201
    body = response.json()
    assert [e["name"] for e in body] == ["Alice", "Bob"]
    assert body[0]["number"] != body[1]["number"]


def test_bulk_create_empty(client):
    response = client.post("/api/entries/bulk", json=[])
    assert response.status_code == 201
    assert response.json() == []


def test_bulk_create_invalid_batch_stores_nothing(client, visitor):
    response = client.post("/api/entries/bulk", json=[visitor, {"name": "x"}])
    assert response.status_code == 400
    assert response.json()["fields"] == ["1.address"]
    assert client.get("/api/entries").json() == []


def test_exit_flow(client, visitor):
    created = create(client, visitor)

    first = client.patch(f"/api/entries/{created['id']}/exit")
    assert first.status_code == 200
    exited = first.json()
    assert exited["status"] == "exited"
    assert parse(exited["exit_time"]) >= parse(exited["entry_time"])

    second = client.patch(f"/api/entries/{created['id']}/exit")
    assert second.status_code == 400
    assert second.json()["error"] == "Entry already exited"
    assert second.json()["entry"]["exit_time"] == exited["exit_time"]


def test_exit_unknown_entry(client):
    assert client.patch("/api/entries/unknown/exit").status_code == 404


def test_status_update_unknown_entry(client):
    response = client.patch("/api/entries/unknown/status", json={"status": "entered"})
    assert response.status_code == 404


def test_status_update(client, visitor):
    created = create(client, visitor)

    refused = client.patch(f"/api/entries/{created['id']}/status", json={"status": "entered"})
    assert refused.status_code == 400

    response = client.patch(
        f"/api/entries/{created['id']}/status",
        json={"status": "exited", "exit_time": "2030-01-01T10:00:00"},
    )
    assert response.status_code == 200
    assert parse(response.json()["exit_time"]) == datetime.datetime(2030, 1, 1, 10, 0)


def test_scan_endpoint(client, visitor):
    created = create(client, {**visitor, "badge_tag": "TAG-9"})

    first = client.post("/api/entries/scan", json={"code": "TAG-9"})
    assert first.status_code == 200
    assert first.json()["outcome"] == "exited"
    assert first.json()["success"] is True
    assert first.json()["entry"]["id"] == created["id"]

    again = client.post("/api/entries/scan", json={"code": created["id"]})
    assert again.json()["outcome"] == "already_exited"
    assert again.json()["success"] is False

    missing = client.post("/api/entries/scan", json={"code": "nope"})
    assert missing.json()["outcome"] == "not_found"
    assert missing.json()["entry"] is None


def test_delete_entry(client, visitor):
    created = create(client, visitor)
    assert client.delete(f"/api/entries/{created['id']}").status_code == 204
    assert client.get(f"/api/entries/{created['id']}").status_code == 404
    assert client.delete(f"/api/entries/{created['id']}").status_code == 404


def test_qr_png_endpoint(client, visitor):
    created = create(client, visitor)
    response = client.get(f"/api/entries/{created['id']}/qr.png")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


def test_import_csv_drops_rows_without_address(client):
    content = "name,address\nAlice,123 Rd\nNo Address,\n".encode("utf-8")
    response = client.post("/api/import", files={"file": ("visitors.csv", content, "text/csv")})
    assert response.status_code == 201
    body = response.json()
    assert body["imported"] == 1
    assert body["entries"][0]["name"] == "Alice"
    assert body["entries"][0]["status"] == "entered"
    assert len(client.get("/api/entries").json()) == 1


def test_import_xlsx(client):
    wb = Workbook()
    ws = wb.active
    ws.append(["Nama", "Alamat", "HP", "Ketemu", "Tujuan", "Status"])
    ws.append(["Siti", "Jl. Sudirman", 81234, "Pak Andi", "Rapat", "exited"])
    buffer = io.BytesIO()
    wb.save(buffer)

    response = client.post(
        "/api/import",
        files={"file": ("tamu.xlsx", buffer.getvalue(), "application/octet-stream")},
    )
    assert response.status_code == 201
    entry = response.json()["entries"][0]
    assert entry["phone_number"] == "81234"
    assert entry["status"] == "entered"


def test_import_xlsx_with_repeated_header(client):
    wb = Workbook()
    ws = wb.active
    ws.append(["Nama", "Alamat", "Nama"])
    ws.append(["Siti", "Jl. Sudirman", None])
    buffer = io.BytesIO()
    wb.save(buffer)

    response = client.post(
        "/api/import",
        files={"file": ("tamu.xlsx", buffer.getvalue(), "application/octet-stream")},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["imported"] == 1
    assert body["entries"][0]["name"] == "Siti"


def test_import_without_valid_rows(client):
    content = b"name\nAlice\n"
    response = client.post("/api/import", files={"file": ("visitors.csv", content, "text/csv")})
    assert response.status_code == 400
    assert "valid rows" in response.json()["error"]


def test_import_unsupported_file(client):
    response = client.post("/api/import", files={"file": ("visitors.txt", b"hello", "text/plain")})
    assert response.status_code == 400


def test_exports(client, visitor):
    create(client, visitor)

    xlsx = client.get("/api/export/entries.xlsx")
    assert xlsx.status_code == 200
    assert "attachment" in xlsx.headers["content-disposition"]
    assert xlsx.content[:2] == b"PK"

    pdf = client.get("/api/export/entries.pdf", params={"filter": "entered"})
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")

    qr = client.get("/api/export/qr-codes.pdf")
    assert qr.status_code == 200
    assert qr.content.startswith(b"%PDF")


def test_pdf_export_with_long_address(client, visitor):
    create(client, {**visitor, "address": "Jl. " + "Panjang " * 1500})
    pdf = client.get("/api/export/entries.pdf")
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")


def test_qr_export_without_entries(client):
    response = client.get("/api/export/qr-codes.pdf")
    assert response.status_code == 400


def test_storage_unavailable_is_503(client, db_session, visitor, monkeypatch):
    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("connection refused"))

    monkeypatch.setattr(db_session, "commit", broken_commit)
    response = client.post("/api/entries", json=visitor)
    assert response.status_code == 503
    assert response.json()["error"] == "Storage unavailable"
