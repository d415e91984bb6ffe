"""
Database helpers

The storefront keeps its data in MongoDB. A client is created explicitly by
the application factory and handed to the components that need it; nothing
in this module holds a global connection.

Collections:
- product: catalog entries
- order: order headers
- order_item: line items with product snapshots
- profile: customer/admin profile and role
- user: login credentials
"""

from datetime import datetime
from typing import Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import settings


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    # MongoClient connects lazily, so this never blocks on startup
    client = MongoClient(url or settings.DATABASE_URL)
    return client[name or settings.DATABASE_NAME]


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_serializable(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort: Optional[list] = None, limit: Optional[int] = None) -> list:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [to_serializable(doc) for doc in cursor]
