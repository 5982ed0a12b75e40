from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aduib_feign.codec import Decoder, Encoder, ErrorDecoder
    from aduib_feign.contract.compiler import Contract
    from aduib_feign.interceptors import RequestInterceptor
    from aduib_feign.retry import Retryer
    from aduib_feign.transport import Transport

__all__ = ["Capability"]


class Capability:
    """Decorates builder components when a client is built.

    Every hook returns its argument unchanged unless overridden. Capabilities
    run in ascending ``order``; each sees the output of the previous one.
    """

    def enrich_transport(self, transport: Transport) -> Transport:
        return transport

    def enrich_retryer(self, retryer: Retryer) -> Retryer:
        return retryer

    def enrich_encoder(self, encoder: Encoder) -> Encoder:
        return encoder

    def enrich_decoder(self, decoder: Decoder) -> Decoder:
        return decoder

    def enrich_error_decoder(self, error_decoder: ErrorDecoder) -> ErrorDecoder:
        return error_decoder

    def enrich_contract(self, contract: Contract) -> Contract:
        return contract

    def enrich_interceptor(self, interceptor: RequestInterceptor) -> RequestInterceptor:
        return interceptor
