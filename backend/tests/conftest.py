import os

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from unittest.mock import AsyncMock, MagicMock

import pytest


def make_cursor(documents):
    """Motor-style cursor: chainable sort/skip/limit, async to_list"""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(documents))
    return cursor


def make_update_result(matched_count: int = 1, modified_count: int = None):
    result = MagicMock()
    result.matched_count = matched_count
    result.modified_count = matched_count if modified_count is None else modified_count
    return result


def make_collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock(return_value=make_update_result(1))
    collection.delete_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.find = MagicMock(return_value=make_cursor([]))
    return collection


@pytest.fixture
def tickets_db():
    db = MagicMock()
    db.tickets = make_collection()
    db.notifications = make_collection()
    db.templates = make_collection()
    db.automations = make_collection()
    return db


@pytest.fixture
def users_collection():
    return make_collection()


@pytest.fixture
def usage_collection():
    return make_collection()
