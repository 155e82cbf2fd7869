"""
HTTP helpers shared by the NinjaRMM and Monday.com clients.
"""

from typing import Any, Dict, List, Optional, Tuple

import requests
import urllib3
from loguru import logger

import constants


class APIError(Exception):
    """Raised when a remote API call fails or returns an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


def configure_ssl_warnings(verify_ssl: bool = constants.VERIFY_SSL) -> None:
    """Silence urllib3 certificate warnings when verification is turned off."""
    if not verify_ssl:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        logger.warning("SSL certificate verification is disabled.")


def validate_api_response(response: requests.Response, operation_name: str,
                          expected_status_codes: Optional[List[int]] = None) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate API response and return standardized result.

    Args:
        response: requests.Response object
        operation_name (str): Name of the operation for logging
        expected_status_codes (list): List of acceptable status codes

    Returns:
        tuple: (success: bool, data: dict or error_dict)
    """
    # Avoid mutable default argument
    if expected_status_codes is None:
        expected_status_codes = [200]

    if response.status_code in expected_status_codes:
        try:
            data = response.json()
            logger.debug("{} successful. Response: {}", operation_name, data)
            return True, data
        except ValueError as e:
            error_msg = f"Failed to parse JSON response for {operation_name}: {str(e)}"
            logger.error(error_msg)
            return False, {"error": error_msg, "status_code": response.status_code}
    else:
        error_msg = f"{operation_name} failed. Status code: {response.status_code}"
        logger.error(error_msg)
        logger.error("Response: {}", response.text)
        return False, {"error": error_msg, "status_code": response.status_code, "response": response.text}
