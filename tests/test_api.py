import base64

from privsalary.api import create_app
from privsalary.config import Settings
from privsalary.encryption import encode_cleartexts

from support import ALICE, BOB, MALLORY, OWNER, World


def caller(address):
    return {"X-Caller-Address": address}


def handles(world, salary, company_size, years):
    enc = world.scheme.encrypt
    return {
        "salary": enc(salary).hex(),
        "company_size": enc(company_size).hex(),
        "years_experience": enc(years).hex(),
    }


def run_batch(client, world):
    assert client.post("/batches/open", headers=caller(OWNER)).status_code == 200
    r = client.post("/submissions", headers=caller(ALICE), json=handles(world, 80000, 2, 5))
    assert r.status_code == 200
    r = client.post("/submissions", headers=caller(BOB), json=handles(world, 90000, 3, 7))
    assert r.status_code == 200
    assert client.post("/batches/close", headers=caller(OWNER)).status_code == 200


def test_health_and_state(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"available": True, "batch_id": 0}

    state = client.get("/state").json()
    assert state["owner"] == OWNER
    assert state["providers"] == sorted([OWNER, ALICE, BOB])
    assert state["batch_open"] is False


def test_request_id_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"


def test_missing_caller_header(client):
    r = client.post("/batches/open")
    assert r.status_code == 422


def test_not_owner_is_forbidden(client):
    r = client.post("/batches/open", headers=caller(MALLORY))
    assert r.status_code == 403
    body = r.json()
    assert body["error"] == "NotOwner"


def test_batch_state_conflicts(client):
    r = client.post("/batches/close", headers=caller(OWNER))
    assert r.status_code == 409
    assert r.json()["error"] == "BatchNotOpen"

    client.post("/batches/open", headers=caller(OWNER))
    r = client.post("/batches/open", headers=caller(OWNER))
    assert r.status_code == 409
    assert r.json()["error"] == "BatchAlreadyOpen"


def test_cooldown_returns_429(client, world):
    client.post("/batches/open", headers=caller(OWNER))
    r = client.post("/submissions", headers=caller(ALICE), json=handles(world, 1, 1, 1))
    assert r.status_code == 200
    r = client.post("/submissions", headers=caller(ALICE), json=handles(world, 1, 1, 1))
    assert r.status_code == 429
    assert r.json()["details"]["retry_after"] == 60


def test_malformed_handle_rejected(client):
    client.post("/batches/open", headers=caller(OWNER))
    r = client.post("/submissions", headers=caller(ALICE),
                    json={"salary": "zz", "company_size": "00", "years_experience": "00"})
    assert r.status_code == 422


def test_handle_with_non_hex_characters_rejected(client, world):
    client.post("/batches/open", headers=caller(OWNER))
    good = world.scheme.encrypt(1).hex()
    for bad in ("ab_" + "c" * 61, "+" + "a" * 63, " " + "a" * 62 + " ", "ab " + "c" * 61):
        assert len(bad) == 64
        r = client.post("/submissions", headers=caller(ALICE),
                        json={"salary": bad, "company_size": good, "years_experience": good})
        assert r.status_code == 422, bad


def test_unknown_handle_is_invalid_parameter(client):
    client.post("/batches/open", headers=caller(OWNER))
    bogus = "11" * 32
    r = client.post("/submissions", headers=caller(ALICE),
                    json={"salary": bogus, "company_size": bogus, "years_experience": bogus})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidParameter"


def test_pause_blocks_and_reports_unavailable(client):
    assert client.post("/admin/pause", headers=caller(OWNER)).json()["paused"] is True
    assert client.get("/health").json()["available"] is False

    r = client.post("/batches/open", headers=caller(OWNER))
    assert r.status_code == 423
    assert r.json()["error"] == "Paused"

    client.post("/admin/unpause", headers=caller(OWNER))
    assert client.post("/batches/open", headers=caller(OWNER)).status_code == 200


def test_provider_admin(client):
    r = client.post("/admin/providers", headers=caller(OWNER), json={"address": MALLORY})
    assert MALLORY in r.json()["providers"]
    r = client.delete(f"/admin/providers/{MALLORY}", headers=caller(OWNER))
    assert MALLORY not in r.json()["providers"]


def test_cooldown_setter(client):
    r = client.post("/admin/cooldown", headers=caller(OWNER), json={"seconds": 5})
    assert r.json()["cooldown_seconds"] == 5
    r = client.post("/admin/cooldown", headers=caller(OWNER), json={"seconds": 0})
    assert r.status_code == 400


def test_transfer_ownership(client):
    r = client.post("/admin/transfer_ownership", headers=caller(OWNER), json={"address": ALICE})
    assert r.json()["owner"] == ALICE
    assert client.post("/batches/open", headers=caller(OWNER)).status_code == 403


def test_full_flow_through_dev_oracle(client, world):
    run_batch(client, world)

    r = client.post("/decryptions", headers=caller(ALICE))
    assert r.status_code == 200
    request_id = r.json()["request_id"]
    assert client.get("/state").json()["pending_requests"] == [request_id]

    r = client.post("/dev/oracle/fulfil")
    assert r.json() == {"delivered": [request_id]}

    context = client.get(f"/decryptions/{request_id}").json()
    assert context["processed"] is True

    completed = client.get("/events", params={"kind": "DECRYPTION_COMPLETED"}).json()
    assert len(completed) == 1
    assert completed[0]["payload"]["avg_salary"] == 85000
    assert completed[0]["payload"]["avg_company_size"] == 2
    assert completed[0]["payload"]["avg_years_experience"] == 6

    r = client.post("/decryptions", headers=caller(BOB))
    assert r.status_code == 409
    assert r.json()["error"] == "AlreadyPublished"


def test_oracle_callback_endpoint(client, world):
    run_batch(client, world)
    request_id = client.post("/decryptions", headers=caller(ALICE)).json()["request_id"]

    cleartexts = world.oracle.decrypt(request_id)
    proof = world.oracle.sign_result(request_id, cleartexts)
    body = {
        "request_id": request_id,
        "cleartexts_b64": base64.b64encode(cleartexts).decode("ascii"),
        "proof_b64": base64.b64encode(proof).decode("ascii"),
    }
    r = client.post("/oracle/callback", json=body)
    assert r.status_code == 200
    assert r.json() == {
        "request_id": request_id,
        "batch_id": 1,
        "avg_salary": 85000,
        "avg_company_size": 2,
        "avg_years_experience": 6,
    }

    r = client.post("/oracle/callback", json=body)
    assert r.status_code == 409
    assert r.json()["error"] == "ReplayDetected"


def test_oracle_callback_forged(client, world):
    run_batch(client, world)
    request_id = client.post("/decryptions", headers=caller(ALICE)).json()["request_id"]

    forged = encode_cleartexts([999999, 1, 1])
    proof = world.oracle.sign_result(request_id, world.oracle.decrypt(request_id))
    r = client.post("/oracle/callback", json={
        "request_id": request_id,
        "cleartexts_b64": base64.b64encode(forged).decode("ascii"),
        "proof_b64": base64.b64encode(proof).decode("ascii"),
    })
    assert r.status_code == 422
    assert r.json()["error"] == "DecryptionFailed"


def test_oracle_callback_unknown_request(client):
    r = client.post("/oracle/callback", json={
        "request_id": 42,
        "cleartexts_b64": base64.b64encode(b"\x00" * 96).decode("ascii"),
        "proof_b64": base64.b64encode(b"{}").decode("ascii"),
    })
    assert r.status_code == 404
    assert r.json()["error"] == "UnknownRequest"


def test_unknown_decryption_context(client):
    assert client.get("/decryptions/99").status_code == 404


def test_ledger_is_opaque(client, world):
    assert client.get("/ledger").json()["salary"] is None
    run_batch(client, world)
    ledger = client.get("/ledger").json()
    assert ledger["batch_id"] == 1
    assert len(ledger["salary"]) == 64


def test_events_filter_by_batch(client, world):
    run_batch(client, world)
    events = client.get("/events", params={"batch_id": 1}).json()
    kinds = [e["kind"] for e in events]
    assert kinds[0] == "BATCH_OPENED"
    assert kinds[-1] == "BATCH_CLOSED"
    assert kinds.count("SUBMISSION_ACCEPTED") == 2


def test_dev_oracle_not_mounted_in_prod():
    world = World()
    from fastapi.testclient import TestClient
    client = TestClient(create_app(world.agg, world.oracle, Settings(env="prod")))
    assert client.post("/dev/oracle/fulfil").status_code == 404
