import json

from lead_importer.store import (
    InMemoryLeadStore,
    InsertLead,
    JsonFileLeadStore,
    UpdateLead,
    matches_filters,
)


def _document(lead_id: str, **overrides):
    document = {
        "_id": lead_id,
        "tenant_id": "tenant-1",
        "name": "Ada Lovelace",
        "phone": "5551112222",
        "email": "ada@example.com",
        "status": "new",
        "tags": ["vip"],
        "lead_score": 0,
        "created_by": "user-1",
    }
    document.update(overrides)
    return document


def test_insert_sets_timestamps_and_counts() -> None:
    store = InMemoryLeadStore()

    outcome = store.bulk_write([InsertLead(_document("a")), InsertLead(_document("b", phone="5553334444"))])

    assert outcome.inserted_count == 2
    assert outcome.write_errors == []
    (stored,) = store.find("tenant-1", {"phone": "5553334444"})
    assert stored["_id"] == "b"
    assert stored["created_at"] == stored["updated_at"]


def test_duplicate_id_is_a_per_operation_error() -> None:
    store = InMemoryLeadStore([_document("a")])

    outcome = store.bulk_write([InsertLead(_document("a")), InsertLead(_document("b"))])

    assert outcome.inserted_count == 1
    assert [index for index, _ in outcome.write_errors] == [0]
    assert store.count("tenant-1") == 2


def test_update_leaves_protected_fields_alone() -> None:
    store = InMemoryLeadStore([_document("a", lead_score=80)])

    outcome = store.bulk_write(
        [UpdateLead("a", {"tenant_id": "other", "lead_score": 0, "created_by": "user-2", "status": "contacted"})]
    )

    assert (outcome.matched_count, outcome.modified_count) == (1, 1)
    (stored,) = store.all_documents()
    assert stored["tenant_id"] == "tenant-1"
    assert stored["lead_score"] == 80
    assert stored["created_by"] == "user-1"
    assert stored["status"] == "contacted"


def test_identical_update_matches_without_modifying() -> None:
    store = InMemoryLeadStore([_document("a", updated_at="2024-01-01T00:00:00+00:00")])

    outcome = store.bulk_write([UpdateLead("a", {"name": "Ada Lovelace", "tags": ["vip"]})])

    assert (outcome.matched_count, outcome.modified_count) == (1, 0)
    assert store.all_documents()[0]["updated_at"] == "2024-01-01T00:00:00+00:00"


def test_update_of_unknown_lead_is_reported() -> None:
    outcome = InMemoryLeadStore().bulk_write([UpdateLead("missing", {"name": "x"})])

    assert outcome.matched_count == 0
    assert outcome.write_errors[0][0] == 0


def test_find_existing_matches_phone_before_email_within_tenant() -> None:
    store = InMemoryLeadStore(
        [
            _document("a"),
            _document("b", tenant_id="tenant-2", phone="5559990000"),
        ]
    )

    assert store.find_existing("tenant-1", phone="5551112222")["_id"] == "a"
    assert store.find_existing("tenant-1", phone="5559990000", email="ada@example.com") is None
    assert store.find_existing("tenant-1", email="ada@example.com")["_id"] == "a"
    assert store.find_existing("tenant-2", email="ada@example.com") is None
    assert store.find_existing("tenant-1") is None


def test_find_returns_copies() -> None:
    store = InMemoryLeadStore([_document("a")])

    store.find("tenant-1")[0]["name"] = "changed"

    assert store.find("tenant-1")[0]["name"] == "Ada Lovelace"


def test_matches_filters_supports_dotted_paths_and_lists() -> None:
    document = _document("a", address={"city": "Austin"})

    assert matches_filters(document, {"address.city": "Austin", "tags": "vip"})
    assert not matches_filters(document, {"address.state": "TX"})
    assert matches_filters(document, None)


def test_json_file_store_persists_between_instances(tmp_path) -> None:
    path = tmp_path / "data" / "leads.json"
    JsonFileLeadStore(path).bulk_write([InsertLead(_document("a"))])

    reloaded = JsonFileLeadStore(path)

    assert reloaded.count() == 1
    assert reloaded.find_existing("tenant-1", phone="5551112222")["_id"] == "a"
    assert json.loads(path.read_text(encoding="utf-8"))[0]["name"] == "Ada Lovelace"
