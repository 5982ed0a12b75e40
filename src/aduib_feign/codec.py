"""Request body encoders, response decoders and error decoders."""

from __future__ import annotations

import datetime
import email.utils
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from aduib_feign.exceptions import DecodeError, EncodeError, FeignHttpError, RetryableError
from aduib_feign.http import HttpResponse, PreparedRequest

__all__ = [
    "Decoder",
    "DefaultErrorDecoder",
    "Encoder",
    "ErrorDecoder",
    "ErrorDecoderFactory",
    "JsonDecoder",
    "JsonEncoder",
]

logger = logging.getLogger(__name__)

CONTENT_TYPE = "Content-Type"
JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"
MULTIPART_MEDIA_TYPE = "multipart/form-data"


def _media_type(request: PreparedRequest) -> str:
    value = request.headers.first(CONTENT_TYPE) or ""
    return value.split(";", 1)[0].strip().lower()


class Encoder(ABC):
    """Writes a call's body (or form parameters) onto the prepared request."""

    @abstractmethod
    def encode(self, obj: Any, body_type: Any, request: PreparedRequest) -> None:
        """Encode ``obj`` as the body of ``request``."""

    def encode_form(self, form: Mapping[str, Any], request: PreparedRequest) -> None:
        """Encode form parameters; defaults to encoding them as a body object."""
        self.encode(dict(form), dict, request)


class JsonEncoder(Encoder):
    """JSON bodies via pydantic; url-encoded and multipart forms via httpx."""

    def encode(self, obj: Any, body_type: Any, request: PreparedRequest) -> None:
        if obj is None:
            return
        try:
            if isinstance(obj, (bytes, bytearray)):
                request.body = bytes(obj)
                return
            if isinstance(obj, str):
                request.body = obj.encode("utf-8")
                return
            if isinstance(obj, BaseModel):
                request.body = obj.model_dump_json().encode("utf-8")
            else:
                adapter_type = body_type if body_type not in (None, Any) else type(obj)
                request.body = TypeAdapter(adapter_type).dump_json(obj)
        except (TypeError, ValueError) as exc:
            raise EncodeError(
                message=f"Cannot encode {type(obj).__name__} as JSON",
                config_key=request.config_key,
                cause=exc,
            ) from exc
        if CONTENT_TYPE not in request.headers:
            request.headers.set(CONTENT_TYPE, [JSON_MEDIA_TYPE])

    def encode_form(self, form: Mapping[str, Any], request: PreparedRequest) -> None:
        media_type = _media_type(request)
        if media_type == FORM_MEDIA_TYPE:
            request.body = urlencode(
                [(key, str(value)) for key, value in form.items()], doseq=False
            ).encode("ascii")
            return
        if media_type == MULTIPART_MEDIA_TYPE:
            data: dict[str, Any] = {}
            files: dict[str, Any] = {}
            for key, value in form.items():
                if isinstance(value, (bytes, bytearray)) or hasattr(value, "read") or isinstance(value, tuple):
                    files[key] = value
                else:
                    data[key] = str(value)
            # httpx renders the multipart body and its boundary
            built = httpx.Request("POST", "http://multipart.invalid", data=data, files=files or None)
            request.body = built.read()
            request.headers.set(CONTENT_TYPE, [built.headers["content-type"]])
            return
        self.encode(dict(form), dict, request)


class Decoder(ABC):
    """Turns a successful response into the method's declared return value."""

    @abstractmethod
    def decode(self, response: HttpResponse, return_type: Any) -> Any:
        """Decode ``response`` into an instance of ``return_type``."""


class JsonDecoder(Decoder):
    """Decodes JSON bodies with pydantic ``TypeAdapter`` validation."""

    def __init__(self) -> None:
        self._adapters: dict[Any, TypeAdapter[Any]] = {}

    def _adapter(self, return_type: Any) -> TypeAdapter[Any]:
        adapter = self._adapters.get(return_type)
        if adapter is None:
            adapter = TypeAdapter(return_type)
            self._adapters[return_type] = adapter
        return adapter

    def decode(self, response: HttpResponse, return_type: Any) -> Any:
        if return_type is HttpResponse:
            return response
        if return_type is None or return_type is type(None):
            return None
        if return_type is bytes:
            return response.body
        if return_type is str:
            return response.text
        if not response.body or response.status in (204, 404):
            return None
        try:
            if return_type in (Any, object):
                return json.loads(response.body)
            return self._adapter(return_type).validate_json(response.body)
        except (ValidationError, ValueError) as exc:
            raise DecodeError(
                message=f"Cannot decode response as {getattr(return_type, '__name__', return_type)}",
                data={"status": response.status},
                cause=exc,
            ) from exc


class ErrorDecoder(ABC):
    """Maps a non-success response to the exception a call raises."""

    @abstractmethod
    def decode(self, config_key: str, response: HttpResponse) -> Exception:
        """Return the exception for ``response``."""


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return time.time() + int(value)
    parsed = email.utils.parsedate_to_datetime(value)
    if parsed.tzinfo is None:
        # "-0000" dates come back naive but are UTC
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.timestamp()


class DefaultErrorDecoder(ErrorDecoder):
    """``FeignHttpError`` for every status; retryable when ``Retry-After`` is set."""

    def decode(self, config_key: str, response: HttpResponse) -> Exception:
        request = response.request
        method = request.method if request is not None else ""
        url = request.url if request is not None else ""
        error = FeignHttpError(
            message=f"[{response.status}] {response.reason} during [{method}] to [{url}] [{config_key}]",
            config_key=config_key,
            status=response.status,
            reason=response.reason,
            method=method,
            url=url,
            headers=tuple((key, tuple(values)) for key, values in response.headers.items()),
            body=response.body,
        )
        retry_header = response.header("Retry-After")
        try:
            retry_after = _parse_retry_after(retry_header[0] if retry_header else None)
        except (TypeError, ValueError):
            logger.debug("Ignoring unparseable Retry-After header %r", retry_header)
            retry_after = None
        if retry_after is not None:
            return RetryableError(
                message=error.message,
                config_key=config_key,
                cause=error,
                retry_after=retry_after,
                status=response.status,
                method=method,
            )
        return error


class ErrorDecoderFactory:
    """Creates an error decoder for a client type when none is configured."""

    def create(self, client_type: type) -> ErrorDecoder:
        return DefaultErrorDecoder()
