"""Service for executing one logical request end-to-end.

Every outgoing request passes through the same steps: logged-out check,
best-effort credential recovery, renewal check, raw-mode normalisation,
throttling (first attempt only), dispatch and classification. 5xx
responses are resubmitted immediately, up to the configured retry limit.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from restpipe.core.session import ClientConfig, ClientSession
from restpipe.domain.errors import ApiError, ClientClosedError, HttpError, RestPipeError, TransientServerError
from restpipe.domain.events.api_events import (
    CredentialRecovered, CredentialRenewed, DomainEvent, RequestDispatched,
    RequestFailed, RequestSucceeded, RequestThrottled, RetryScheduled,
)
from restpipe.domain.interfaces.http_logger import HttpLogger
from restpipe.domain.interfaces.transport import Transport
from restpipe.domain.models.auth import Credential, ForcedRenewal
from restpipe.domain.models.common import LogTag
from restpipe.domain.models.http import RequestDescriptor, ResponseEnvelope, normalize_raw_json
from restpipe.domain.models.resilience import Classification, Outcome
from restpipe.infrastructure.resilience.error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)

EventSink = Callable[[DomainEvent], None]


def log_event(event: DomainEvent) -> None:
    """Default event sink."""
    logger.debug(f"EVENT: {event}")


class RequestPipeline:
    """Authenticates, throttles, dispatches, retries and classifies requests."""

    def __init__(
        self,
        session: ClientSession,
        transport: Transport,
        classifier: Optional[ErrorClassifier] = None,
        http_logger: Optional[HttpLogger] = None,
        event_sink: Optional[EventSink] = None,
    ):
        """Initializes the RequestPipeline.

        Args:
            session: Shared client state (credential, rate limiter, config).
            transport: Sends requests over the network.
            classifier: Decides the outcome of each response.
            http_logger: Logs each attempt when config.log_http is on.
            event_sink: Receives domain events (defaults to debug logging).
        """
        self.session = session
        self.transport = transport
        self.classifier = classifier or ErrorClassifier()
        self.http_logger = http_logger
        self.event_sink = event_sink or log_event

    async def execute(self, request: RequestDescriptor) -> ResponseEnvelope:
        """Executes one logical request.

        Returns:
            The successful response, for deserialization by the caller.

        Raises:
            ClientClosedError: The client is logged out.
            RenewalError: The credential needed renewing and renewal failed.
            TransportError: No response could be obtained.
            ApiError: The body carried a structured API error.
            TransientServerError: 5xx responses persisted past the retry limit.
            HttpError: Any other non-2xx response.
        """
        try:
            return await self._run(request)
        except RestPipeError as e:
            self._dispatch(RequestFailed(
                method=request.method,
                url=request.url,
                error_type=type(e).__name__,
                error_message=str(e),
                status_code=getattr(e, "status_code", None),
            ))
            raise

    async def _run(self, request: RequestDescriptor) -> ResponseEnvelope:
        if self.session.logged_out:
            raise ClientClosedError()

        config = self.session.config
        recovered = self._recover()
        if recovered is not None:
            request = request.with_header("Authorization", f"bearer {recovered.access_token}")

        start_time = time.perf_counter()
        retries = 0
        while True:
            if retries > 0:
                # Yield once so a pending cancellation lands before the next attempt
                await asyncio.sleep(0)
                if self.session.logged_out:
                    raise ClientClosedError()

            request = await self._renew_if_needed(request, config)
            request = normalize_raw_json(request)

            # Retries reuse the permit paid for by the first attempt
            if retries == 0:
                waited = await self.session.rate_limiter.acquire()
                if waited > 0:
                    self._dispatch(RequestThrottled(method=request.method, url=request.url, wait_time_seconds=waited))

            self._dispatch(RequestDispatched(method=request.method, url=request.url, attempt_number=retries + 1))
            response = await self._send(request, config)
            classification = self.classifier.classify(response)

            if classification.retryable and retries < config.retry_limit:
                retries += 1
                logger.warning(
                    f"{request.method} {request.url} returned HTTP {response.status_code}; "
                    f"retrying ({retries}/{config.retry_limit})"
                )
                self._dispatch(RetryScheduled(
                    method=request.method,
                    url=request.url,
                    attempt_number=retries,
                    status_code=response.status_code,
                ))
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            return self._conclude(request, response, classification, retries + 1, latency_ms)

    def _recover(self) -> Optional[Credential]:
        """Re-adopts a renewable credential from the store when the live one lost its refresh token."""
        tokens = self.session.token_manager
        credential = tokens.current()
        if (credential is not None and credential.renewable) or tokens.store is None or tokens.username is None:
            return None
        try:
            if not tokens.recover_from_store():
                return None
        except Exception as e:
            # Best effort: the request goes ahead with the credential it has
            logger.warning(f"Could not recover credential for '{tokens.username}' from the store: {e}")
            return None
        self._dispatch(CredentialRecovered(username=tokens.username))
        return tokens.current()

    async def _renew_if_needed(self, request: RequestDescriptor, config: ClientConfig) -> RequestDescriptor:
        tokens = self.session.token_manager
        forced = tokens.forced_renewal is ForcedRenewal.PENDING
        renewed = await tokens.renew_if_needed(config.auto_renew)
        if renewed is None:
            return request
        self._dispatch(CredentialRenewed(forced=forced, expiration=renewed.expiration.isoformat()))
        # The request was built with the previous access token
        return request.with_header("Authorization", f"bearer {renewed.access_token}")

    async def _send(self, request: RequestDescriptor, config: ClientConfig) -> ResponseEnvelope:
        tag = self._log_request(request) if config.log_http else None
        response = await self.transport.execute(request)
        if tag is not None:
            self._log_response(tag, response)
        return response

    def _conclude(
        self,
        request: RequestDescriptor,
        response: ResponseEnvelope,
        classification: Classification,
        attempts: int,
        latency_ms: float,
    ) -> ResponseEnvelope:
        outcome = classification.outcome
        if outcome is Outcome.SUCCESS:
            self._dispatch(RequestSucceeded(
                method=request.method,
                url=request.url,
                status_code=response.status_code,
                attempts=attempts,
                latency_ms=latency_ms,
            ))
            return response

        if outcome is Outcome.API_ERROR:
            first = classification.first_error
            raise ApiError(
                code=first["code"],
                explanation=first["explanation"],
                field=first["field"],
                details=classification.errors,
                response=response,
            )
        if outcome is Outcome.TRANSIENT_SERVER_ERROR:
            raise TransientServerError(response, attempts)
        raise HttpError(response)

    # --- Observers: never allowed to fail a request ---

    def _log_request(self, request: RequestDescriptor) -> Optional[LogTag]:
        if self.http_logger is None:
            return None
        try:
            return self.http_logger.request(request)
        except Exception as e:
            logger.warning(f"HTTP logger failed on request: {e}", exc_info=True)
            return None

    def _log_response(self, tag: LogTag, response: ResponseEnvelope) -> None:
        try:
            self.http_logger.response(tag, response)
        except Exception as e:
            logger.warning(f"HTTP logger failed on response: {e}", exc_info=True)

    def _dispatch(self, event: DomainEvent) -> None:
        try:
            self.event_sink(event)
        except Exception as e:
            logger.warning(f"Event sink failed on {type(event).__name__}: {e}", exc_info=True)
