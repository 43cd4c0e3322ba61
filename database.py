"""
MongoDB access layer

One `Repository` per collection (users, posts, comments) wrapping the
pymongo calls the routes need: insert, find, sorted/limited listing and
delete by id. Documents cross the API boundary through `to_public`.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger("social.database")

USERS = "users"
POSTS = "posts"
COMMENTS = "comments"

# newest first; _id breaks ties between documents written in the same millisecond
NEWEST_FIRST: List[Tuple[str, int]] = [("date", DESCENDING), ("_id", DESCENDING)]
POSTS_PAGE_SIZE = 20
MAX_COMMENT_LIMIT = 1000


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form Mongo hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def connect(url: str, name: str) -> Database:
    """Return a handle on database `name`. pymongo connects lazily on first use."""
    client = MongoClient(url)
    return client[name]


def parse_object_id(value: Union[str, ObjectId]) -> ObjectId:
    """Parse a path parameter into an ObjectId; raises 400 when malformed."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def to_public(doc: Optional[dict]) -> Optional[dict]:
    """Convert a Mongo document to a JSON-friendly dict.

    `_id` becomes a string `id`, ObjectId references become strings and the
    stored password hash is dropped.
    """
    if not doc:
        return doc
    d = {**doc}
    _id = d.pop("_id", None)
    if _id is not None:
        d["id"] = str(_id)
    d.pop("password", None)
    for key, value in d.items():
        if isinstance(value, ObjectId):
            d[key] = str(value)
    return d


@contextmanager
def storage_errors(message: str) -> Iterator[None]:
    """Map store and disk failures inside the block to a 500 with `message`."""
    try:
        yield
    except (PyMongoError, OSError):
        logger.exception(message)
        raise HTTPException(status_code=500, detail=message)


class Repository:
    """Create/read/delete over a single collection."""

    def __init__(self, db: Database, name: str) -> None:
        self.name = name
        self.collection = db[name]

    def create(self, document: Dict[str, Any]) -> ObjectId:
        result = self.collection.insert_one(dict(document))
        return result.inserted_id

    def find_one(self, filter_dict: Dict[str, Any]) -> Optional[dict]:
        return self.collection.find_one(filter_dict)

    def get(self, doc_id: Union[str, ObjectId]) -> Optional[dict]:
        return self.collection.find_one({"_id": parse_object_id(doc_id)})

    def find_many(
        self,
        filter_dict: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        cursor = self.collection.find(filter_dict or {})
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def delete_one(self, doc_id: Union[str, ObjectId]) -> bool:
        """Delete by id. Returns False when nothing matched."""
        result = self.collection.delete_one({"_id": parse_object_id(doc_id)})
        return result.deleted_count > 0


class Store:
    """The three collections of the platform."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.users = Repository(db, USERS)
        self.posts = Repository(db, POSTS)
        self.comments = Repository(db, COMMENTS)

    def ensure_indexes(self) -> None:
        self.users.collection.create_index([("username", ASCENDING)], unique=True)
        self.comments.collection.create_index([("postId", ASCENDING), ("date", DESCENDING)])
        self.posts.collection.create_index([("date", DESCENDING)])

    def ping(self) -> bool:
        try:
            self.db.command("ping")
            return True
        except PyMongoError:
            return False
