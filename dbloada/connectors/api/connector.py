"""API connector for reading records from REST endpoints."""

import logging
import time
from typing import Any, Iterator, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from requests.exceptions import RequestException, Timeout
from urllib3.util.retry import Retry

from dbloada.connectors.api.config import ApiSourceOptions
from dbloada.connectors.base import RawRecord
from dbloada.connectors.file.formats import extract_items, record_from_object
from dbloada.core.exceptions import ConnectionFailure, FormatFailure
from dbloada.models.project import SourceSpec, TableSpec

logger = logging.getLogger(__name__)

COMMON_DATA_KEYS = ("data", "results", "items", "records")


class ApiConnector:
    """Reads JSON records from a REST API.

    Supports page and offset pagination, bearer and basic authentication,
    and retries with exponential backoff. Server errors (5xx) are retried
    by urllib3; timeouts and connection errors are retried here.
    """

    def read_records(
        self, source: SourceSpec, table: TableSpec
    ) -> Iterator[Union[RawRecord, FormatFailure]]:
        options = ApiSourceOptions.model_validate(source.options)
        session = self._build_session(options)
        try:
            yield from self._read_pages(session, options, source, table)
        finally:
            session.close()

    def _build_session(self, options: ApiSourceOptions) -> requests.Session:
        session = requests.Session()

        if options.auth_type == "bearer":
            session.headers.update(
                {"Authorization": f"Bearer {options.auth_token.get_secret_value()}"}
            )
        elif options.auth_type == "basic":
            session.auth = HTTPBasicAuth(
                options.auth_username, options.auth_password.get_secret_value()
            )

        if options.headers:
            session.headers.update(options.headers)

        if options.max_retries > 0:
            retry_strategy = Retry(
                total=options.max_retries,
                backoff_factor=options.retry_delay,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        return session

    def _read_pages(
        self,
        session: requests.Session,
        options: ApiSourceOptions,
        source: SourceSpec,
        table: TableSpec,
    ) -> Iterator[Union[RawRecord, FormatFailure]]:
        page = 1
        offset = 0
        pages_read = 0
        position = 0

        while True:
            params = dict(options.params or {})
            if options.pagination_type == "page":
                params[options.page_param] = page
            elif options.pagination_type == "offset":
                params[options.page_param] = offset
            if options.pagination_type != "none" and options.limit_param:
                params[options.limit_param] = options.page_size

            document = self._fetch(session, options, params, source)
            items = self._extract_items(document, options)
            pages_read += 1

            logger.debug(
                f"Fetched {len(items)} record(s)",
                extra={"source": source.id, "context": {"page": pages_read}},
            )
            for item in items:
                yield record_from_object(item, table, position, options.url)
                position += 1

            if options.pagination_type == "none" or not items:
                break
            if len(items) < options.page_size:
                break
            if options.max_pages is not None and pages_read >= options.max_pages:
                break
            page += 1
            offset += len(items)

    def _extract_items(self, document: Any, options: ApiSourceOptions) -> list[Any]:
        if options.data_path is None and isinstance(document, dict):
            for key in COMMON_DATA_KEYS:
                if isinstance(document.get(key), list):
                    return document[key]
        return extract_items(document, options.data_path, options.url)

    def _fetch(
        self,
        session: requests.Session,
        options: ApiSourceOptions,
        params: dict[str, Any],
        source: SourceSpec,
    ) -> Any:
        response = self._make_request(session, options, params)
        try:
            return response.json()
        except ValueError as e:
            raise ConnectionFailure(
                f"Response is not valid JSON: {e}",
                context={"source": source.id, "url": options.url},
            ) from e

    def _make_request(
        self,
        session: requests.Session,
        options: ApiSourceOptions,
        params: dict[str, Any],
        attempt: int = 0,
    ) -> requests.Response:
        """Make an HTTP GET request with retry logic and exponential backoff.

        Raises:
            ConnectionFailure: If the request fails after all retries.
        """
        url = options.url
        try:
            response = session.get(url, params=params, timeout=options.timeout)
            response.raise_for_status()
            return response
        except Timeout as e:
            if attempt < options.max_retries:
                self._backoff(options, attempt)
                return self._make_request(session, options, params, attempt + 1)
            raise ConnectionFailure(
                f"Request timeout after {options.max_retries + 1} attempts",
                context={"url": url, "timeout": options.timeout},
            ) from e
        except RequestException as e:
            response: Optional[requests.Response] = getattr(e, "response", None)
            if response is not None:
                status_code = response.status_code
                if 400 <= status_code < 500:
                    raise ConnectionFailure(
                        f"Client error {status_code}: {e}",
                        context={"url": url, "status_code": status_code},
                    ) from e
                # 5xx responses were already retried by urllib3.
                raise ConnectionFailure(
                    f"Server error {status_code}: {e}",
                    context={"url": url, "status_code": status_code},
                ) from e

            if attempt < options.max_retries:
                self._backoff(options, attempt)
                return self._make_request(session, options, params, attempt + 1)
            raise ConnectionFailure(
                f"Request failed after {options.max_retries + 1} attempts: {e}",
                context={"url": url},
            ) from e

    def _backoff(self, options: ApiSourceOptions, attempt: int) -> None:
        time.sleep(options.retry_delay * (options.backoff_rate**attempt))
