"""
Client for the sustainability actions API, plus the state behind the
tracker screen (form validation, sorting, totals, edit target).

The tracker never updates its list optimistically: after every successful
change it fetches the whole collection again.
"""
import logging
import math
import re
from datetime import date as date_cls
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

API_BASE_URL = "http://localhost:3001"
TIMEOUT_SECONDS = 10.0
MAX_POINTS = 1000
MIN_ACTION_LENGTH = 3

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?[0-9]+)")


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ActionsClient:
    """One method per API operation. Returns the decoded success payload."""

    def __init__(self, base_url: str = API_BASE_URL, http: Optional[httpx.Client] = None,
                 timeout: float = TIMEOUT_SECONDS):
        self._owns_http = http is None
        self.http = http or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    def close(self):
        if self._owns_http:
            self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, verb: str, method: str, path: str, **kwargs):
        logger.debug("API request: %s %s", method, path)
        try:
            response = self.http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("API request failed: %s %s: %s", method, path, exc)
            raise ApiError(f"Failed to {verb}: {exc}") from exc
        logger.debug("API response: %d %s", response.status_code, path)
        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            reason = payload.get("error") if isinstance(payload, dict) else None
            message = reason or f"Request failed with status code {response.status_code}"
            logger.warning("API error: %d %s: %s", response.status_code, path, message)
            raise ApiError(f"Failed to {verb}: {message}", response.status_code, payload)
        return response.json()

    def list_actions(self) -> list:
        return self._request("fetch actions", "GET", "/api/actions")

    def create_action(self, data: dict) -> dict:
        return self._request("create action", "POST", "/api/actions", json=data)

    def update_action(self, action_id: int, data: dict) -> dict:
        return self._request("update action", "PUT", f"/api/actions/{action_id}", json=data)

    def patch_action(self, action_id: int, data: dict) -> dict:
        return self._request("patch action", "PATCH", f"/api/actions/{action_id}", json=data)

    def delete_action(self, action_id: int) -> dict:
        return self._request("delete action", "DELETE", f"/api/actions/{action_id}")


def validate_action_form(form: dict, today: Optional[date_cls] = None) -> dict:
    """Return a mapping of field name to error message; empty when valid."""
    today = today or date_cls.today()
    errors = {}

    text = str(form.get("action") or "").strip()
    if not text:
        errors["action"] = "Action description is required"
    elif len(text) < MIN_ACTION_LENGTH:
        errors["action"] = "Action description must be at least 3 characters"

    raw_date = str(form.get("date") or "").strip()
    if not raw_date:
        errors["date"] = "Date is required"
    else:
        try:
            if not _DATE_RE.match(raw_date):
                raise ValueError(raw_date)
            picked = date_cls.fromisoformat(raw_date)
        except ValueError:
            errors["date"] = "Date must be a valid date (YYYY-MM-DD)"
        else:
            if picked > today:
                errors["date"] = "Date cannot be in the future"

    raw_points = form.get("points")
    if raw_points is None or str(raw_points).strip() == "":
        errors["points"] = "Points are required"
    else:
        points = _parse_points(raw_points)
        if points is None or points < 0:
            errors["points"] = "Points must be a positive number"
        elif points > MAX_POINTS:
            errors["points"] = "Points cannot exceed 1000"

    return errors


def _parse_points(raw) -> Optional[int]:
    """Leading integer of the input, so "12.5" and "12 pts" both give 12."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    match = _LEADING_INT_RE.match(str(raw))
    return int(match.group(1)) if match else None


def form_to_payload(form: dict) -> dict:
    return {
        "action": str(form["action"]).strip(),
        "date": str(form["date"]).strip(),
        "points": _parse_points(form["points"]),
    }


def _sort_key(field: str):
    def key(item):
        value = item.get(field)
        if isinstance(value, str):
            return (0, value.lower())
        if value is None:
            return (2, 0)
        return (1, value)
    return key


def sort_actions(actions: list, field: str = "id", direction: str = "asc") -> list:
    return sorted(actions, key=_sort_key(field), reverse=(direction == "desc"))


def total_points(actions: list) -> float:
    return sum(a.get("points") or 0 for a in actions)


class ActionTracker:
    """Local view of the collection driven through an ActionsClient."""

    SORT_FIELDS = ("id", "action", "date", "points")

    def __init__(self, client: ActionsClient):
        self.client = client
        self.actions = []
        self.editing_id = None
        self.sort_field = "id"
        self.sort_direction = "asc"
        self.error = None
        self.form_errors = {}
        self.busy = False

    @property
    def sorted_actions(self) -> list:
        return sort_actions(self.actions, self.sort_field, self.sort_direction)

    @property
    def total_points(self):
        return total_points(self.actions)

    @property
    def editing(self) -> Optional[dict]:
        if self.editing_id is None:
            return None
        for item in self.actions:
            if item.get("id") == self.editing_id:
                return item
        return None

    def _run(self, call):
        if self.busy:
            raise RuntimeError("Another request is already in flight")
        self.busy = True
        try:
            result = call()
        except ApiError as exc:
            self.error = exc.message
            return None
        finally:
            self.busy = False
        self.error = None
        return result

    def refresh(self) -> bool:
        result = self._run(self.client.list_actions)
        if result is None:
            return False
        self.actions = result
        return True

    def submit(self, form: dict, today: Optional[date_cls] = None) -> bool:
        """Create a new action, or replace the one being edited."""
        self.form_errors = validate_action_form(form, today)
        if self.form_errors:
            return False
        payload = form_to_payload(form)
        if self.editing_id is not None:
            action_id = self.editing_id
            saved = self._run(lambda: self.client.update_action(action_id, payload))
        else:
            saved = self._run(lambda: self.client.create_action(payload))
        if saved is None:
            return False
        self.editing_id = None
        return self.refresh()

    def start_edit(self, action_id: int):
        self.editing_id = action_id
        self.form_errors = {}

    def cancel_edit(self):
        self.editing_id = None
        self.form_errors = {}

    def remove(self, action_id: int) -> bool:
        if self._run(lambda: self.client.delete_action(action_id)) is None:
            return False
        if self.editing_id == action_id:
            self.editing_id = None
        return self.refresh()

    def toggle_sort(self, field: str):
        if field not in self.SORT_FIELDS:
            raise ValueError(f"Cannot sort by {field!r}")
        if field == self.sort_field:
            self.sort_direction = "desc" if self.sort_direction == "asc" else "asc"
        else:
            self.sort_field = field
            self.sort_direction = "asc"

    def dismiss_error(self):
        self.error = None
