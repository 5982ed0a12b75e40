"""Per-method invocation and the generated client proxy."""

from __future__ import annotations

import dataclasses
import functools
import inspect
import logging
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from aduib_feign.codec import Decoder, Encoder, ErrorDecoder
from aduib_feign.config.options import Options
from aduib_feign.contract.compiler import bound_parameters
from aduib_feign.contract.template import RequestTemplate
from aduib_feign.exceptions import DecodeError, FeignException, InvocationFault, RetryableError
from aduib_feign.http import HttpRequest, HttpResponse
from aduib_feign.interceptors import RequestInterceptor
from aduib_feign.observability.logging import LogContext
from aduib_feign.observability.request_logger import FeignLogger, LogLevel
from aduib_feign.retry import ExceptionPropagationPolicy, Retryer
from aduib_feign.transport import Transport
from aduib_feign.utils.anyio_compat import run as run_anyio

if TYPE_CHECKING:
    from aduib_feign.builder import Target

__all__ = ["MethodHandler", "create_proxy"]

logger = logging.getLogger(__name__)

PROXY_TARGET_ATTR = "__feign_target__"
PROXY_HANDLERS_ATTR = "__feign_handlers__"


class MethodHandler:
    """Runs one routed method: expand, encode, intercept, send, decode."""

    def __init__(
        self,
        template: RequestTemplate,
        target: Target,
        *,
        transport: Transport,
        encoder: Encoder,
        decoder: Decoder,
        error_decoder: ErrorDecoder,
        retryer: Retryer,
        interceptors: Sequence[RequestInterceptor] = (),
        options_supplier: Callable[[], Options] = Options,
        feign_logger: FeignLogger | None = None,
        log_level: LogLevel = LogLevel.NONE,
        propagation_policy: ExceptionPropagationPolicy = ExceptionPropagationPolicy.NONE,
        dismiss404: bool = False,
    ) -> None:
        self.template = template
        self.target = target
        self._transport = transport
        self._encoder = encoder
        self._decoder = decoder
        self._error_decoder = error_decoder
        self._retryer = retryer
        self._interceptors = tuple(interceptors)
        self._options_supplier = options_supplier
        self._logger = feign_logger or FeignLogger(logging.getLogger(__name__))
        self._log_level = log_level
        self._propagation_policy = propagation_policy
        self._dismiss404 = dismiss404

    @property
    def config_key(self) -> str:
        return self.template.config_key

    def options(self, argv: Sequence[Any]) -> Options:
        index = self.template.options_index
        if index is not None and index < len(argv) and isinstance(argv[index], Options):
            return argv[index]
        return self._options_supplier()

    def build_request(self, argv: Sequence[Any]) -> HttpRequest:
        prepared = self.template.prepare(argv)
        if self.template.body_index is not None:
            body = argv[self.template.body_index]
            self._encoder.encode(body, self.template.body_type, prepared)
        elif self.template.form_params:
            form = self.template.form_values(argv)
            if form:
                self._encoder.encode_form(form, prepared)
        for interceptor in self._interceptors:
            interceptor.apply(prepared)
        return self.target.apply(prepared)

    async def invoke(self, argv: Sequence[Any]) -> Any:
        request = self.build_request(argv)
        options = self.options(argv)
        with LogContext(client=self.target.name, method=self.config_key, request_id=uuid.uuid4().hex):
            try:
                return await self._retryer.execute(
                    lambda: self._execute_and_decode(request, options),
                    on_retry=lambda attempt, _exc: self._logger.log_retry(
                        self.config_key, self._log_level, attempt
                    ),
                )
            except RetryableError as exc:
                if self._propagation_policy is ExceptionPropagationPolicy.UNWRAP and exc.cause is not None:
                    raise exc.cause from exc
                raise

    async def _execute_and_decode(self, request: HttpRequest, options: Options) -> Any:
        self._logger.log_request(self.config_key, self._log_level, request)
        start = time.perf_counter()
        try:
            response = await self._transport.execute(request, options)
        except Exception as exc:
            self._logger.log_io_exception(
                self.config_key, self._log_level, exc, (time.perf_counter() - start) * 1000
            )
            raise
        self._logger.log_response(
            self.config_key, self._log_level, response, (time.perf_counter() - start) * 1000
        )
        return self.decode(response)

    def decode(self, response: HttpResponse) -> Any:
        return_type = self.template.return_type
        if return_type is HttpResponse:
            return response
        if response.is_success or (response.status == 404 and self._dismiss404):
            try:
                return self._decoder.decode(response, return_type)
            except InvocationFault as exc:
                if exc.config_key is not None:
                    raise
                raise dataclasses.replace(exc, config_key=self.config_key) from exc.cause
            except FeignException:
                raise
            except Exception as exc:
                raise DecodeError(
                    message=f"{type(exc).__name__} decoding response of {self.config_key}",
                    config_key=self.config_key,
                    cause=exc,
                    data={"status": response.status},
                ) from exc
        raise self._error_decoder.decode(self.config_key, response)


def _bind_arguments(signature: inspect.Signature, names: Sequence[str], args: tuple, kwargs: Mapping[str, Any]) -> list[Any]:
    bound = signature.bind(None, *args, **kwargs)
    bound.apply_defaults()
    return [bound.arguments.get(name) for name in names]


def _stub(func: Callable[..., Any], handler: MethodHandler) -> Callable[..., Any]:
    signature = inspect.signature(func)
    names = [param.name for param in bound_parameters(func)]

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def invoke_async(self: Any, *args: Any, **kwargs: Any) -> Any:
            return await handler.invoke(_bind_arguments(signature, names, args, kwargs))

        return invoke_async

    @functools.wraps(func)
    def invoke_sync(self: Any, *args: Any, **kwargs: Any) -> Any:
        return run_anyio(handler.invoke, _bind_arguments(signature, names, args, kwargs))

    return invoke_sync


def create_proxy(client_type: type, target: Target, handlers: Mapping[str, MethodHandler]) -> Any:
    """Return an instance of a generated subclass of ``client_type``.

    Each routed method is replaced by a stub that dispatches to its handler;
    coroutine methods stay coroutines, plain methods block until the call
    completes.
    """
    namespace: dict[str, Any] = {
        PROXY_HANDLERS_ATTR: dict(handlers),
        "__repr__": lambda self: f"<{client_type.__name__} proxy name={target.name!r} url={target.url!r}>",
        "__module__": client_type.__module__,
    }
    for name, handler in handlers.items():
        namespace[name] = _stub(getattr(client_type, name), handler)
    proxy_type = type(f"{client_type.__name__}FeignProxy", (client_type,), namespace)
    instance = object.__new__(proxy_type)
    object.__setattr__(instance, PROXY_TARGET_ATTR, target)
    logger.debug("Created proxy for %s with %d method(s)", client_type.__qualname__, len(handlers))
    return instance
