from __future__ import annotations

import pytest

from classquiz.store import (
    InMemoryDocumentStore,
    PermissionDeniedError,
    StoreClosedError,
    describe_store_error,
)


def test_use_before_init_fails():
    store = InMemoryDocumentStore()
    with pytest.raises(StoreClosedError):
        store.get("quizzes", "x")
    with pytest.raises(StoreClosedError):
        store.subscribe("quizzes", lambda snapshot: None)


def test_add_get_and_query(store):
    first = store.add("submissions", {"quizId": "a", "studentId": "s1"})
    store.add("submissions", {"quizId": "b", "studentId": "s1"})
    store.add("submissions", {"quizId": "a", "studentId": "s2"})

    assert store.get("submissions", first).data["quizId"] == "a"
    assert store.get("submissions", "missing") is None
    assert len(store.query("submissions", studentId="s1").docs) == 2
    assert len(store.query("submissions", quizId="a", studentId="s2").docs) == 1
    assert store.query("nothing").empty


def test_stored_documents_are_isolated_copies(store):
    source = {"answers": {"q1": "x"}}
    store.set("submissions", "s", source)
    source["answers"]["q1"] = "mutated"

    snapshot = store.get("submissions", "s")
    assert snapshot.data["answers"] == {"q1": "x"}
    with pytest.raises(TypeError):
        snapshot.data["answers"] = {}  # type: ignore[index]

    copy = snapshot.to_dict()
    copy["answers"]["q1"] = "changed"
    assert store.get("submissions", "s").data["answers"] == {"q1": "x"}


def test_nested_stored_data_is_read_only(store):
    store.set(
        "submissions",
        "s",
        {"answers": {"q1": "x"}, "evaluations": {"q1": {"isCorrect": True}}, "tags": ["a"]},
    )
    snapshot = store.get("submissions", "s")

    with pytest.raises(TypeError):
        snapshot.data["answers"]["q1"] = "tampered"  # type: ignore[index]
    with pytest.raises(TypeError):
        snapshot.data["evaluations"]["q1"]["isCorrect"] = False  # type: ignore[index]
    with pytest.raises(AttributeError):
        snapshot.data["tags"].append("b")

    assert store.get("submissions", "s").data["answers"]["q1"] == "x"
    assert store.query("submissions").docs[0].to_dict() == {
        "answers": {"q1": "x"},
        "evaluations": {"q1": {"isCorrect": True}},
        "tags": ["a"],
    }


def test_merge_keeps_existing_fields(store):
    store.set("userProfiles", "u", {"email": "a@b.c", "displayName": "A"})
    store.set("userProfiles", "u", {"displayName": "B"}, merge=True)
    assert dict(store.get("userProfiles", "u").data) == {"email": "a@b.c", "displayName": "B"}

    store.set("userProfiles", "u", {"displayName": "C"})
    assert dict(store.get("userProfiles", "u").data) == {"displayName": "C"}


def test_subscription_delivers_full_snapshots(store):
    seen = []
    subscription = store.subscribe("submissions", lambda snap: seen.append(sorted(snap.ids())), quizId="a")

    store.set("submissions", "1", {"quizId": "a"})
    store.set("submissions", "2", {"quizId": "b"})
    store.set("submissions", "3", {"quizId": "a"})
    store.delete("submissions", "1")

    assert seen == [[], ["1"], ["1"], ["1", "3"], ["3"]]
    assert subscription.active

    subscription.cancel()
    store.set("submissions", "4", {"quizId": "a"})
    assert seen[-1] == ["3"]
    assert not subscription.active


def test_document_subscription(store):
    seen = []
    store.subscribe_document("teacherEmails", "t@school.org", lambda doc: seen.append(doc and doc.id))
    store.set("teacherEmails", "t@school.org", {"email": "t@school.org"})
    store.delete("teacherEmails", "t@school.org")
    assert seen == [None, "t@school.org", None]


def test_read_denied_goes_to_error_callback():
    with InMemoryDocumentStore(deny_reads={"submissions"}) as store:
        errors = []
        store.subscribe("submissions", lambda snap: None, on_error=errors.append)
        assert len(errors) == 1
        assert isinstance(errors[0], PermissionDeniedError)


def test_callback_errors_without_handler_propagate(store):
    def explode(snapshot):
        raise RuntimeError("listener bug")

    with pytest.raises(RuntimeError):
        store.subscribe("quizzes", explode)


def test_write_denied():
    with InMemoryDocumentStore(deny_writes={"teacherEmails"}) as store:
        with pytest.raises(PermissionDeniedError):
            store.set("teacherEmails", "x", {})


def test_close_cancels_listeners():
    store = InMemoryDocumentStore()
    store.init()
    subscription = store.subscribe("quizzes", lambda snap: None)
    store.close()
    assert not subscription.active
    assert not store.is_open


def test_new_ids_are_unique(store):
    ids = {store.new_id("quizzes") for _ in range(100)}
    assert len(ids) == 100
    assert all(len(doc_id) == 20 for doc_id in ids)


def test_describe_store_error():
    assert "rules denied" in describe_store_error(PermissionDeniedError("nope"))
    assert "not available" in describe_store_error(StoreClosedError("closed"))
    assert describe_store_error(RuntimeError("disk full")) == "Unknown error while saving: disk full"
