"""
Sustainability actions resource.

Every operation loads the whole collection from the store, changes it in
memory and writes it back. Request payloads are checked against the Action
shape before anything is written.
"""
import logging
import re
from typing import Annotated, Any, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, ValidationError

from store import highest_id

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["action", "date", "points"]
EXPECTED_TYPES = {"action": "string", "date": "string", "points": "number"}
NOT_FOUND = "Sustainability action not found"

_ID_RE = re.compile(r"^\s*[+-]?[0-9]+\s*$")

# JSON has no Infinity or NaN, so 1e999 (parsed as inf) must not reach the file.
Points = Union[StrictInt, Annotated[StrictFloat, Field(allow_inf_nan=False)]]


class Action(BaseModel):
    id: int
    action: str
    date: str
    points: Points


class ActionFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: StrictStr
    date: StrictStr
    points: Points


class ActionChanges(BaseModel):
    # Defaults are not validated, so an explicit null is still rejected.
    model_config = ConfigDict(extra="ignore")

    action: StrictStr = None
    date: StrictStr = None
    points: Points = None


class ActionError(Exception):
    """A client-facing failure with the status code and JSON body to send."""

    def __init__(self, status_code: int, body: dict):
        super().__init__(body.get("error"))
        self.status_code = status_code
        self.body = body


def parse_action_id(raw: Any) -> int:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if not isinstance(raw, str) or not _ID_RE.match(raw):
        raise ActionError(400, {"error": "Invalid action ID format"})
    return int(raw)


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ActionError(400, {"error": "Request body must be a JSON object"})
    return payload


def _invalid_types(exc: ValidationError) -> ActionError:
    fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
    return ActionError(400, {
        "error": "Invalid data types",
        "expected": EXPECTED_TYPES,
        "fields": fields,
    })


def validate_full(payload: Any) -> ActionFields:
    """Check a create/replace body: all three fields present and well typed."""
    payload = _require_object(payload)
    received = {
        "action": bool(payload.get("action")),
        "date": bool(payload.get("date")),
        "points": "points" in payload,
    }
    if not all(received.values()):
        raise ActionError(400, {
            "error": "Missing required fields",
            "required": REQUIRED_FIELDS,
            "received": received,
        })
    try:
        return ActionFields.model_validate(payload)
    except ValidationError as exc:
        raise _invalid_types(exc) from exc


def validate_partial(payload: Any) -> dict:
    """Check a patch body and return only the fields that were supplied."""
    payload = _require_object(payload)
    try:
        changes = ActionChanges.model_validate(payload)
    except ValidationError as exc:
        raise _invalid_types(exc) from exc
    return changes.model_dump(exclude_unset=True)


class ActionsResource:
    def __init__(self, store):
        self.store = store

    def _load(self) -> list:
        return self.store.read().actions

    def _index_of(self, actions: list, action_id: int) -> int:
        for i, item in enumerate(actions):
            if isinstance(item, dict) and item.get("id") == action_id:
                return i
        raise ActionError(404, {"error": NOT_FOUND, "actionId": action_id})

    def next_id(self, actions: list) -> int:
        return max(highest_id(actions), self.store.id_watermark) + 1

    def list_actions(self) -> list:
        return self._load()

    def create(self, payload: Any) -> dict:
        fields = validate_full(payload)
        actions = self._load()
        record = Action(id=self.next_id(actions), **fields.model_dump()).model_dump()
        actions.append(record)
        self.store.write(actions)
        logger.info("Created sustainability action %d", record["id"])
        return record

    def replace(self, raw_id: Any, payload: Any) -> dict:
        action_id = parse_action_id(raw_id)
        fields = validate_full(payload)
        actions = self._load()
        index = self._index_of(actions, action_id)
        record = Action(id=action_id, **fields.model_dump()).model_dump()
        actions[index] = record
        self.store.write(actions)
        return record

    def patch(self, raw_id: Any, payload: Any) -> dict:
        action_id = parse_action_id(raw_id)
        changes = validate_partial(payload)
        actions = self._load()
        index = self._index_of(actions, action_id)
        current = actions[index]
        record = {
            "id": action_id,
            "action": changes.get("action", current.get("action")),
            "date": changes.get("date", current.get("date")),
            "points": changes.get("points", current.get("points")),
        }
        actions[index] = record
        self.store.write(actions)
        return record

    def delete(self, raw_id: Any) -> dict:
        action_id = parse_action_id(raw_id)
        actions = self._load()
        index = self._index_of(actions, action_id)
        del actions[index]
        self.store.write(actions)
        logger.info("Deleted sustainability action %d", action_id)
        return {
            "message": "Sustainability action deleted successfully",
            "deletedActionId": action_id,
        }

