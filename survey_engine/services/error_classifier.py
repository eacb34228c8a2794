"""Classifies raw transport and decoding errors into user-facing API errors."""

from typing import Any, Optional

import structlog

from survey_engine.errors import (
    ApiError,
    CellularDataRestricted,
    ConnectivityCode,
    ConnectivityError,
    DecodingError,
    NetworkFailure,
    RequestFailure,
    ServerError,
    ServerUnavailable,
    UnstructuredError,
)
from survey_engine.utils.strings import Strings

INTERNAL_SERVER_ERROR = 500
UNAVAILABLE_STATUS_CODES = frozenset({502, 503, 504})

NO_CONNECTIVITY_CODES = frozenset({
    ConnectivityCode.NOT_CONNECTED,
    ConnectivityCode.CONNECTION_LOST,
    ConnectivityCode.DATA_NOT_ALLOWED,
})
HOST_UNREACHABLE_CODES = frozenset({
    ConnectivityCode.TIMED_OUT,
    ConnectivityCode.CANNOT_CONNECT_TO_HOST,
    ConnectivityCode.CANNOT_FIND_HOST,
})


def classify(
    error: BaseException,
    region_name: Optional[str] = None,
    is_cellular_data_restricted: bool = False,
    *,
    logger: Optional[Any] = None,
) -> BaseException:
    """
    Map ``error`` onto the classified set of :class:`ApiError` variants.

    Already-classified values pass through unchanged, so classifying twice is a
    no-op. Errors from outside the three known families (API, connectivity,
    decoding) are returned as-is rather than wrapped.
    """
    log = logger if logger is not None else structlog.get_logger(__name__)

    if isinstance(error, ApiError):
        return _classify_api_error(error, region_name, is_cellular_data_restricted, log)

    if isinstance(error, ConnectivityError):
        return _classify_connectivity_error(error, region_name, is_cellular_data_restricted, log)

    if isinstance(error, DecodingError):
        return _classify_decoding_error(error, region_name, log)

    return error


def _classify_api_error(
    error: ApiError,
    region_name: Optional[str],
    is_cellular_data_restricted: bool,
    log: Any,
) -> BaseException:
    if isinstance(error, RequestFailure):
        status_code = error.status_code
        if status_code != INTERNAL_SERVER_ERROR and status_code not in UNAVAILABLE_STATUS_CODES:
            return error
        if region_name is None:
            log.warning(
                "Server error without region name for user message",
                status_code=status_code,
            )
            return error
        if status_code == INTERNAL_SERVER_ERROR:
            return ServerError(region_name=region_name)
        return ServerUnavailable(region_name=region_name, status_code=status_code)

    if isinstance(error, NetworkFailure) and is_cellular_data_restricted:
        log.info("Network failure reclassified as cellular data restriction")
        return CellularDataRestricted()

    return error


def _classify_connectivity_error(
    error: ConnectivityError,
    region_name: Optional[str],
    is_cellular_data_restricted: bool,
    log: Any,
) -> BaseException:
    if error.code in NO_CONNECTIVITY_CODES:
        if is_cellular_data_restricted:
            log.info(
                "Connectivity error reclassified as cellular data restriction",
                code=error.code.value,
            )
            return CellularDataRestricted()
        return NetworkFailure(underlying=error)

    if error.code in HOST_UNREACHABLE_CODES:
        if region_name is None:
            return NetworkFailure(underlying=error)
        return ServerUnavailable(region_name=region_name, status_code=None)

    return NetworkFailure(underlying=error)


def _classify_decoding_error(
    error: DecodingError,
    region_name: Optional[str],
    log: Any,
) -> BaseException:
    # Malformed payloads are a server-side symptom; parser text is not for users.
    log.warning("Decoding failure classified as server problem", error=str(error))
    if region_name is None:
        return UnstructuredError(message=Strings.DECODING_FAILURE)
    return ServerUnavailable(region_name=region_name, status_code=None)
