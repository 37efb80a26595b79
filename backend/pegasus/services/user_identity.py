"""
User identity resolution

Identity records are keyed either by a native ObjectId `_id` or by an opaque
string `id` field. Every lookup and mutation tries the native form first
(only when the identifier is 24 hex chars) and falls back to the string form.
"""

from typing import Optional, List, Dict, Any
from bson import ObjectId
import re

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def is_object_id_string(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


def identity_queries(user_id: str) -> List[Dict[str, Any]]:
    """Queries to try, in order, for a user identifier"""
    queries: List[Dict[str, Any]] = []
    if is_object_id_string(user_id):
        queries.append({"_id": ObjectId(user_id)})
    queries.append({"id": user_id})
    return queries


async def resolve_user(users, user_id: str) -> Optional[dict]:
    """First identity record matching either id form"""
    for query in identity_queries(user_id):
        user = await users.find_one(query)
        if user:
            return user
    return None


async def resolve_and_update_user(users, user_id: str, update: Dict[str, Any]) -> int:
    """
    Apply an update to the identity record under either id form

    Returns:
        Matched count (0 when neither form matched)
    """
    for query in identity_queries(user_id):
        result = await users.update_one(query, update)
        if result.matched_count > 0:
            return result.matched_count
    return 0
