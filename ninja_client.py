"""
NinjaRMM API Client

Thin wrapper over the NinjaRMM ticketing API: OAuth client-credentials token
handling, ticket boards, and board runs with cursor pagination.
"""

import time
from typing import Any, Dict, Iterable, List, Optional

import requests
from loguru import logger

import constants
from http_utils import APIError, validate_api_response
from models import NinjaTicket


class NinjaAPIError(APIError):
    """Raised when a NinjaRMM API call fails."""


class NinjaClient:
    """Client for the NinjaRMM v2 ticketing API."""

    def __init__(self, client_id: Optional[str], client_secret: Optional[str],
                 base_url: str = constants.NINJA_BASE_URL,
                 timeout: int = constants.REQUEST_TIMEOUT,
                 verify_ssl: bool = constants.VERIFY_SSL,
                 page_size: int = constants.NINJA_PAGE_SIZE):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/v2"
        self.token_url = f"{self.base_url}/ws/oauth/token"
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.page_size = page_size
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

    def get_access_token(self) -> str:
        """
        Get or refresh the OAuth access token.

        A cached token is reused until it is within the expiry buffer.

        Returns:
            str: Bearer token

        Raises:
            NinjaAPIError: If the token request fails
        """
        if self._access_token and time.time() < self._token_expiry - constants.TOKEN_EXPIRY_BUFFER_SECONDS:
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise NinjaAPIError("NinjaRMM client credentials are not configured")

        logger.debug("Requesting NinjaRMM access token from {}", self.token_url)
        try:
            response = requests.post(
                self.token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": constants.NINJA_OAUTH_SCOPE,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.exceptions.RequestException as e:
            raise NinjaAPIError(f"Request error while fetching NinjaRMM token: {str(e)}") from e

        success, data = validate_api_response(response, "Get NinjaRMM access token")
        if not success or not data.get("access_token"):
            raise NinjaAPIError(
                data.get("error", "NinjaRMM token response did not contain an access token"),
                status_code=data.get("status_code"),
                response_text=data.get("response", ""),
            )

        self._access_token = data["access_token"]
        self._token_expiry = time.time() + float(data.get("expires_in", 0))
        logger.debug("NinjaRMM access token acquired, expires in {}s", data.get("expires_in"))
        return self._access_token

    def _request(self, method: str, path: str, operation_name: str,
                 payload: Optional[Dict[str, Any]] = None) -> Any:
        """Send an authenticated request and return the decoded JSON body."""
        token = self.get_access_token()
        url = f"{self.api_url}{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.request(
                method, url, headers=headers, json=payload,
                timeout=self.timeout, verify=self.verify_ssl,
            )
        except requests.exceptions.RequestException as e:
            raise NinjaAPIError(f"Request error during {operation_name}: {str(e)}") from e

        success, data = validate_api_response(response, operation_name)
        if not success:
            raise NinjaAPIError(
                data.get("error", f"{operation_name} failed"),
                status_code=data.get("status_code"),
                response_text=data.get("response", ""),
            )
        return data

    def get_ticket_boards(self) -> List[Dict[str, Any]]:
        """Get all ticket boards."""
        boards = self._request("GET", "/ticketing/trigger/boards", "Get NinjaRMM ticket boards")
        return boards or []

    def get_tickets_from_board(self, board_id: int) -> List[Dict[str, Any]]:
        """
        Run a ticket board and collect every page of results.

        Args:
            board_id (int): NinjaRMM board ID

        Returns:
            list: Raw ticket rows
        """
        all_rows = []
        last_cursor_id = None

        while True:
            payload = {"pageSize": self.page_size}
            if last_cursor_id is not None:
                payload["lastCursorId"] = last_cursor_id

            body = self._request(
                "POST", f"/ticketing/trigger/board/{board_id}/run",
                f"Run NinjaRMM board {board_id}", payload,
            ) or {}

            rows = body.get("data") or []
            all_rows.extend(rows)
            logger.debug("Fetched {} tickets from board {} (total {})", len(rows), board_id, len(all_rows))

            next_cursor_id = (body.get("metadata") or {}).get("lastCursorId")
            if len(rows) < self.page_size or next_cursor_id is None or next_cursor_id == last_cursor_id:
                break
            last_cursor_id = next_cursor_id

        return all_rows

    def get_all_tickets(self, board_ids: Optional[Iterable[int]] = None) -> List[NinjaTicket]:
        """
        Get all tickets from the selected boards, deduplicated by ticket ID.

        A board that fails to run is logged and skipped; failing to list the
        boards at all raises.

        Args:
            board_ids: Board IDs to fetch. Fetches every board when None.

        Returns:
            list: NinjaTicket instances in fetch order
        """
        boards = self.get_ticket_boards()

        if board_ids is not None:
            wanted = {int(board_id) for board_id in board_ids}
            boards = [board for board in boards if board.get("id") in wanted]

        tickets = []
        seen_ids = set()

        for board in boards:
            board_id = board.get("id")
            try:
                rows = self.get_tickets_from_board(board_id)
            except NinjaAPIError as e:
                logger.warning("Could not fetch tickets from board {} ({}): {}", board.get("name"), board_id, e)
                continue

            for row in rows:
                ticket_id = row.get("id")
                if ticket_id is None or ticket_id in seen_ids:
                    continue
                seen_ids.add(ticket_id)
                tickets.append(NinjaTicket.from_ninja_data(row))

        logger.info("Fetched {} unique tickets from {} NinjaRMM boards", len(tickets), len(boards))
        return tickets
