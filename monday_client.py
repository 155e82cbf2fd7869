"""
Monday.com API Client

Thin wrapper over the Monday.com GraphQL API. All queries and mutations pass
their arguments as GraphQL variables.
"""

import json
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

import constants
from http_utils import APIError, validate_api_response
from models import MondayItem


class MondayAPIError(APIError):
    """Raised when a Monday.com API call fails."""


ITEM_FIELDS = """
    id
    name
    column_values {
        id
        type
        text
        value
        column {
            id
            title
        }
    }
"""

BOARD_ITEMS_QUERY = """
query ($boardIds: [ID!], $limit: Int!) {
    boards(ids: $boardIds) {
        items_page(limit: $limit) {
            cursor
            items {%s}
        }
    }
}
""" % ITEM_FIELDS

NEXT_ITEMS_QUERY = """
query ($cursor: String!, $limit: Int!) {
    next_items_page(cursor: $cursor, limit: $limit) {
        cursor
        items {%s}
    }
}
""" % ITEM_FIELDS

BOARD_COLUMNS_QUERY = """
query ($boardIds: [ID!]) {
    boards(ids: $boardIds) {
        id
        name
        columns {
            id
            title
            type
            settings_str
        }
    }
}
"""

CREATE_OR_GET_TAG_MUTATION = """
mutation ($tagName: String, $boardId: ID) {
    create_or_get_tag(tag_name: $tagName, board_id: $boardId) {
        id
    }
}
"""

CREATE_ITEM_MUTATION = """
mutation ($boardId: ID!, $itemName: String!, $columnValues: JSON) {
    create_item(board_id: $boardId, item_name: $itemName, column_values: $columnValues) {
        id
        name
    }
}
"""

UPDATE_ITEM_MUTATION = """
mutation ($boardId: ID!, $itemId: ID!, $columnValues: JSON!) {
    change_multiple_column_values(board_id: $boardId, item_id: $itemId, column_values: $columnValues) {
        id
        name
    }
}
"""


class MondayClient:
    """Client for the Monday.com v2 GraphQL API."""

    def __init__(self, api_token: Optional[str],
                 api_url: str = constants.MONDAY_API_URL,
                 api_version: str = constants.MONDAY_API_VERSION,
                 timeout: int = constants.REQUEST_TIMEOUT,
                 verify_ssl: bool = constants.VERIFY_SSL,
                 page_size: int = constants.MONDAY_PAGE_SIZE):
        self.api_token = api_token
        self.api_url = api_url
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.page_size = page_size
        self.headers = {
            "Authorization": api_token or "",
            "Content-Type": "application/json",
            "API-Version": api_version,
        }

    def query(self, query_string: str, variables: Optional[Dict[str, Any]] = None,
              operation_name: str = "Monday.com query") -> Dict[str, Any]:
        """
        Execute a GraphQL query or mutation.

        Args:
            query_string (str): GraphQL document
            variables (dict): GraphQL variables
            operation_name (str): Name of the operation for logging

        Returns:
            dict: The "data" member of the response

        Raises:
            MondayAPIError: On transport errors, non-200 responses or GraphQL errors
        """
        if not self.api_token:
            raise MondayAPIError("Monday.com API token is not configured")

        payload = {"query": query_string, "variables": variables or {}}
        logger.debug("{} variables: {}", operation_name, payload["variables"])

        try:
            response = requests.post(
                self.api_url, headers=self.headers, json=payload,
                timeout=self.timeout, verify=self.verify_ssl,
            )
        except requests.exceptions.RequestException as e:
            raise MondayAPIError(f"Request error during {operation_name}: {str(e)}") from e

        success, data = validate_api_response(response, operation_name)
        if not success:
            raise MondayAPIError(
                data.get("error", f"{operation_name} failed"),
                status_code=data.get("status_code"),
                response_text=data.get("response", ""),
            )

        if data.get("errors") or data.get("error_message"):
            errors = data.get("errors") or data.get("error_message")
            raise MondayAPIError(f"Monday.com GraphQL error during {operation_name}: {json.dumps(errors)}")

        return data.get("data") or {}

    def _first_board(self, data: Dict[str, Any], board_id: str) -> Dict[str, Any]:
        boards = data.get("boards") or []
        if not boards:
            raise MondayAPIError(f"Monday.com board {board_id} not found")
        return boards[0]

    def get_board_items(self, board_id: str) -> List[MondayItem]:
        """
        Get all items from a board, following the items page cursor.

        Args:
            board_id (str): Board ID

        Returns:
            list: MondayItem instances in board order
        """
        data = self.query(
            BOARD_ITEMS_QUERY,
            {"boardIds": [str(board_id)], "limit": self.page_size},
            f"Fetch items from board {board_id}",
        )
        page = self._first_board(data, board_id).get("items_page") or {}

        raw_items = list(page.get("items") or [])
        cursor = page.get("cursor")

        while cursor:
            data = self.query(
                NEXT_ITEMS_QUERY,
                {"cursor": cursor, "limit": self.page_size},
                f"Fetch next items page from board {board_id}",
            )
            page = data.get("next_items_page") or {}
            raw_items.extend(page.get("items") or [])
            cursor = page.get("cursor")

        logger.debug("Fetched {} items from Monday.com board {}", len(raw_items), board_id)
        return [MondayItem.from_monday_data(raw_item) for raw_item in raw_items]

    def get_board_columns(self, board_id: str) -> List[Dict[str, Any]]:
        """Get the column definitions of a board."""
        data = self.query(
            BOARD_COLUMNS_QUERY,
            {"boardIds": [str(board_id)]},
            f"Fetch columns for board {board_id}",
        )
        return self._first_board(data, board_id).get("columns") or []

    def get_existing_tags(self, board_id: str, column_id: str) -> Dict[str, int]:
        """
        Get existing tags from a tags column.

        Args:
            board_id (str): Board ID
            column_id (str): Tags column ID

        Returns:
            dict: Tag name -> tag ID
        """
        tags = {}
        for column in self.get_board_columns(board_id):
            if column.get("id") != column_id or not column.get("settings_str"):
                continue
            try:
                settings = json.loads(column["settings_str"])
            except ValueError:
                logger.warning("Could not parse settings for tags column {}", column_id)
                break
            for tag_id, tag_data in (settings.get("tags") or {}).items():
                if isinstance(tag_data, dict) and tag_data.get("name"):
                    tags[tag_data["name"]] = int(tag_id)
            break

        return tags

    def create_or_get_tag(self, board_id: str, tag_name: str) -> int:
        """Create a tag, or get the existing tag with that name. Returns its ID."""
        data = self.query(
            CREATE_OR_GET_TAG_MUTATION,
            {"tagName": tag_name, "boardId": str(board_id)},
            f"Create or get tag '{tag_name}'",
        )
        tag = data.get("create_or_get_tag") or {}
        if tag.get("id") is None:
            raise MondayAPIError(f"Monday.com did not return an ID for tag '{tag_name}'")
        return int(tag["id"])

    def create_item(self, board_id: str, item_name: str, column_values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a new item in a board.

        Args:
            board_id (str): Board ID
            item_name (str): Item name
            column_values (dict): Column ID -> column value

        Returns:
            dict: {"id": ..., "name": ...} of the created item
        """
        data = self.query(
            CREATE_ITEM_MUTATION,
            {"boardId": str(board_id), "itemName": item_name, "columnValues": json.dumps(column_values)},
            f"Create item '{item_name}' on board {board_id}",
        )
        created = data.get("create_item")
        if not created:
            raise MondayAPIError(f"Monday.com did not return the created item '{item_name}'")
        return created

    def update_item_columns(self, board_id: str, item_id: str, column_values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update several column values of an existing item in one call.

        Args:
            board_id (str): Board ID
            item_id (str): Item ID to update
            column_values (dict): Column ID -> column value

        Returns:
            dict: {"id": ..., "name": ...} of the updated item
        """
        data = self.query(
            UPDATE_ITEM_MUTATION,
            {"boardId": str(board_id), "itemId": str(item_id), "columnValues": json.dumps(column_values)},
            f"Update item {item_id} on board {board_id}",
        )
        return data.get("change_multiple_column_values") or {}
