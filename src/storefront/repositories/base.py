from typing import TypeVar, Type, Optional, Any, Dict, Mapping
import logging

import requests
from pydantic import BaseModel, ValidationError as SchemaValidationError

from storefront.core.exceptions import (
    ExternalServiceError, MalformedResponseError, GENERIC_CONNECTION_MESSAGE
)

M = TypeVar('M', bound=BaseModel)

logger = logging.getLogger(__name__)


class BaseApiRepository:
    """
    Base for repositories that talk JSON over HTTP.
    Every failure surfaces as one error type carrying a human-readable message:
    non-2xx responses use the body's ``message`` when present, anything else
    gets the generic connection error.
    """

    service_name = "backend"

    def __init__(
        self,
        base_url: str,
        http_session: Optional[requests.Session] = None,
        timeout: float = 10
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http_session or requests.Session()
        self.timeout = timeout

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def raise_failure(self, message: str, http_status: Optional[int] = None, operation: Optional[str] = None):
        """Raise the repository's error type; subclasses pick a different one"""
        raise ExternalServiceError(self.service_name, message, http_status)

    def execute(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None
    ) -> requests.Response:
        """
        Send a request and return the response only if it is 2xx

        Raises:
            The error type chosen by raise_failure
        """
        url = self.url_for(path)
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        try:
            response = self.http.request(
                method,
                url,
                headers=request_headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"{self.service_name}: {method} {url} failed: {str(e)}")
            self.raise_failure(GENERIC_CONNECTION_MESSAGE, operation=operation)

        if not 200 <= response.status_code < 300:
            message = self._error_message(response)
            logger.error(f"{self.service_name}: {method} {url} returned {response.status_code}: {message}")
            self.raise_failure(message, response.status_code, operation)

        return response

    def execute_json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Send a request and return the decoded 2xx JSON body"""
        operation = kwargs.get("operation")
        response = self.execute(method, path, **kwargs)
        try:
            body = response.json()
        except ValueError:
            logger.error(f"{self.service_name}: {method} {path} returned a non-JSON body")
            self.raise_malformed("Response is not valid JSON", operation)
        if not isinstance(body, dict):
            self.raise_malformed("Response is not a JSON object", operation)
        return body

    def raise_malformed(self, message: str, operation: Optional[str] = None):
        raise MalformedResponseError(self.service_name, message)

    def parse(self, model: Type[M], body: Mapping[str, Any], operation: Optional[str] = None) -> M:
        """Validate a body against a response schema at the boundary"""
        try:
            return model.model_validate(body)
        except SchemaValidationError as e:
            logger.error(f"{self.service_name}: unexpected {model.__name__} shape: {e.error_count()} errors")
            self.raise_malformed(f"Unexpected response format for {model.__name__}", operation)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return GENERIC_CONNECTION_MESSAGE
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return GENERIC_CONNECTION_MESSAGE
