"""
Tests for MongoDB checkpoint / event storage and event routers
"""

import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from pg_replicator.database.mongodb_manager import (
    CHECKPOINT_CHUNK_COLLECTION,
    CHECKPOINT_COLLECTION,
    EVENT_COLLECTION,
    MongoDBManager,
)
from pg_replicator.exceptions import ReplicatorError
from pg_replicator.replication.router import (
    LoggingEventRouter,
    MongoEventRouter,
    create_event_router,
)


def make_manager(existing=(), **kwargs):
    client = MagicMock()
    db = client.__getitem__.return_value
    db.list_collection_names.return_value = list(existing)
    return MongoDBManager("mongodb://localhost", "replicator", client=client, **kwargs), db


class TestMongoDBManager:
    def test_creates_missing_collections(self):
        _, db = make_manager()
        created = [c.args[0] for c in db.create_collection.call_args_list]
        assert created == [CHECKPOINT_COLLECTION, CHECKPOINT_CHUNK_COLLECTION, EVENT_COLLECTION]

    def test_existing_collections_untouched(self):
        _, db = make_manager([CHECKPOINT_COLLECTION, CHECKPOINT_CHUNK_COLLECTION, EVENT_COLLECTION])
        db.create_collection.assert_not_called()

    def test_load_missing_checkpoint(self):
        manager, db = make_manager()
        db.__getitem__.return_value.find_one.return_value = None
        assert manager.load_checkpoint("users") == {}

    def test_load_checkpoint_data(self):
        manager, db = make_manager()
        db.__getitem__.return_value.find_one.return_value = {"_id": "users", "data": {"ids": [1]}}
        assert manager.load_checkpoint("users") == {"ids": [1]}

    def test_save_checkpoint_upserts(self):
        manager, db = make_manager()
        collection = db.__getitem__.return_value

        manager.save_checkpoint("users", {"ids": [1], "version": 2})

        db.__getitem__.assert_any_call(CHECKPOINT_COLLECTION)
        selector, document = collection.replace_one.call_args.args
        assert selector == {"_id": "users"}
        assert document["data"] == {"version": 2}
        assert document["chunks"] == {"ids": 1}
        assert collection.replace_one.call_args.kwargs == {"upsert": True}

    def test_save_checkpoint_splits_large_lists(self):
        manager, db = make_manager(checkpoint_chunk_size=2)
        collection = db.__getitem__.return_value
        pairs = [[1, "a"], [2, "b"], [3, "c"], [4, "d"], [5, "e"]]

        manager.save_checkpoint("users", {"table_hash": pairs, "ids": [1, 2, 3, 4, 5]})

        chunk_docs = collection.insert_many.call_args.args[0]
        table_chunks = [doc for doc in chunk_docs if doc["field"] == "table_hash"]
        assert [doc["items"] for doc in table_chunks] == [[[1, "a"], [2, "b"]], [[3, "c"], [4, "d"]], [[5, "e"]]]
        assert [doc["chunk"] for doc in table_chunks] == [0, 1, 2]
        assert all(len(doc["items"]) <= 2 for doc in chunk_docs)

        _, document = collection.replace_one.call_args.args
        assert document["chunks"] == {"table_hash": 3, "ids": 3}
        assert {doc["generation"] for doc in chunk_docs} == {document["generation"]}

    def test_save_checkpoint_removes_previous_generation_after_switch(self):
        manager, db = make_manager()
        collection = db.__getitem__.return_value

        manager.save_checkpoint("users", {"ids": [1]})

        call_names = [name for name, _, _ in collection.mock_calls
                      if name in ("insert_many", "replace_one", "delete_many")]
        assert call_names == ["insert_many", "replace_one", "delete_many"]
        _, document = collection.replace_one.call_args.args
        assert collection.delete_many.call_args.args[0] == {
            "checkpoint_id": "users",
            "generation": {"$ne": document["generation"]},
        }

    def test_load_chunked_checkpoint(self):
        manager, db = make_manager()
        collection = db.__getitem__.return_value
        collection.find_one.return_value = {
            "_id": "users", "data": {}, "chunks": {"table_hash": 2}, "generation": "g1",
        }
        collection.find.return_value.sort.return_value = [
            {"chunk": 0, "items": [[1, "a"], [2, "b"]]},
            {"chunk": 1, "items": [[3, "c"]]},
        ]

        data = manager.load_checkpoint("users")

        assert data == {"table_hash": [[1, "a"], [2, "b"], [3, "c"]]}
        collection.find.assert_called_once_with(
            {"checkpoint_id": "users", "generation": "g1", "field": "table_hash"}
        )

    def test_load_checkpoint_missing_chunk(self):
        manager, db = make_manager()
        collection = db.__getitem__.return_value
        collection.find_one.return_value = {
            "_id": "users", "data": {}, "chunks": {"ids": 2}, "generation": "g1",
        }
        collection.find.return_value.sort.return_value = [{"chunk": 0, "items": [1]}]

        with pytest.raises(ReplicatorError):
            manager.load_checkpoint("users")

    def test_insert_event(self):
        manager, db = make_manager()
        now = datetime(2024, 1, 1)

        manager.insert_event("t.insert.id", now, {"id": 1})

        db.__getitem__.return_value.insert_one.assert_called_once_with(
            {"tag": "t.insert.id", "time": now, "record": {"id": 1}}
        )


class TestEventRouters:
    def test_mongo_router_delegates(self):
        manager = MagicMock()
        now = datetime(2024, 1, 1)
        MongoEventRouter(manager).emit("t", now, {"id": 1})
        manager.insert_event.assert_called_once_with("t", now, {"id": 1})

    def test_logging_router(self, caplog):
        with caplog.at_level(logging.INFO):
            LoggingEventRouter().emit("t.delete.id", datetime(2024, 1, 1), {"id": 2})
        assert 't.delete.id {"id": 2}' in caplog.text

    def test_create_event_router(self):
        assert isinstance(create_event_router(None), LoggingEventRouter)
        assert isinstance(create_event_router(MagicMock()), MongoEventRouter)
