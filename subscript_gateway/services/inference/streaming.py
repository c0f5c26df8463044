"""
Streaming Inference Session

One session = one prompt sent over one websocket, answered by a stream of
text deltas. The session:

1. Signs the chat endpoint and opens the websocket
2. Sends a single request frame (app identity, random uid, model
   parameters, the prompt as one user message)
3. Relays each text delta in arrival order
4. Ends exactly once: completed (status == 2), failed (vendor code or
   transport drop), or cancelled by the caller

DESIGN DECISION: The primary surface is an async generator (stream())
rather than callbacks. The callback style used by UI code is provided by
start(), which runs the generator in a task. Both go through the same
state machine, and a terminal state can never be left - that is what
guarantees "at most one terminal outcome" and "nothing after cancel".

Malformed individual frames are logged and skipped. A non-zero vendor
code or a connection drop is fatal to the session.
"""

import asyncio
import json
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol, Sequence, Union
from uuid import UUID, uuid4

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from subscript_gateway.models.audit import AuditEventBuilder
from subscript_gateway.models.gateway import ContentPart, ModelCredential, StreamState
from subscript_gateway.services.errors import (
    ConfigurationError,
    GatewayError,
    TransportError,
    VendorError,
)
from subscript_gateway.services.signing import RequestSigner


logger = structlog.get_logger(__name__)

STATUS_COMPLETE = 2

Prompt = Union[str, Sequence[ContentPart]]


class StreamTimeoutError(TransportError):
    """No frame arrived within the receive deadline."""
    pass


class StreamConnection(Protocol):
    """The slice of a websocket connection the session relies on."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[StreamConnection]]


async def websocket_connect(url: str) -> StreamConnection:
    """Open a vendor websocket (default connector)."""
    return await websockets.connect(url, open_timeout=15, max_size=None)


def extract_delta(frame: dict) -> str:
    """
    Pull the text delta out of an inbound frame.

    Frame shape: {"payload": {"choices": {"text": [{"content": "..."}]}}}
    Missing or mis-shaped pieces mean "no text in this frame".
    """
    payload = frame.get("payload")
    choices = payload.get("choices") if isinstance(payload, dict) else None
    items = choices.get("text") if isinstance(choices, dict) else None
    if not isinstance(items, list):
        return ""
    return "".join(
        str(item.get("content") or "")
        for item in items
        if isinstance(item, dict)
    )


class StreamingInferenceSession:
    """
    A single-use streaming chat session.

    Usage:
        session = StreamingInferenceSession(credential)
        async for delta in session.stream("Hello"):
            print(delta, end="")

        # or, callback style
        cancel = session.start(prompt, on_token, on_complete, on_error)
    """

    def __init__(
        self,
        credential: ModelCredential,
        *,
        endpoint: str,
        default_domain: str = "xdeepseekv3",
        temperature: float = 0.5,
        max_tokens: int = 4096,
        receive_timeout: Optional[float] = None,
        signer: Optional[RequestSigner] = None,
        connect: Optional[Connector] = None,
        audit_logger=None,
        correlation_id: Optional[UUID] = None,
    ):
        self._credential = credential
        self._endpoint = endpoint
        self._default_domain = default_domain
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._receive_timeout = receive_timeout
        self._signer = signer or RequestSigner()
        self._connect = connect or websocket_connect
        self._audit_logger = audit_logger
        self._correlation_id = correlation_id

        self.session_id = uuid4().hex
        self._state = StreamState.IDLE
        self._chunks: list[str] = []
        self._connection: Optional[StreamConnection] = None
        self._error: Optional[GatewayError] = None
        self._task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def text(self) -> str:
        """Everything received so far."""
        return "".join(self._chunks)

    @property
    def error(self) -> Optional[GatewayError]:
        return self._error

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The task driving a start()-ed session."""
        return self._task

    def _transition(self, new_state: StreamState) -> bool:
        """Move to new_state unless the session already ended."""
        if self._state.is_terminal:
            return False
        self._state = new_state
        return True

    async def _fail(self, error: GatewayError) -> bool:
        """Record the single failure outcome. False if the session already ended."""
        if not self._transition(StreamState.FAILED):
            return False
        self._error = error
        await self._audit(AuditEventBuilder.stream_failed(
            session_id=self.session_id,
            error_message=str(error),
            error_code=getattr(error, "code", None),
            correlation_id=self._correlation_id,
        ))
        return True

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    def build_frame(self, prompt: Prompt) -> dict:
        """The single outbound request frame."""
        if isinstance(prompt, str):
            content = prompt
        else:
            content = [part.to_wire() for part in prompt]

        return {
            "header": {
                "app_id": self._credential.app_id,
                "uid": uuid4().hex[:32],
            },
            "parameter": {
                "chat": {
                    "domain": self._credential.domain_or(self._default_domain),
                    "temperature": self._temperature,
                    "max_tokens": self._max_tokens,
                }
            },
            "payload": {
                "message": {
                    "text": [{"role": "user", "content": content}]
                }
            },
        }

    def _decode(self, raw: Union[str, bytes]) -> Optional[dict]:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("stream_frame_unparseable", session_id=self.session_id, error=str(e))
            return None
        if not isinstance(frame, dict):
            logger.warning("stream_frame_malformed", session_id=self.session_id)
            return None
        return frame

    async def _receive(self, connection: StreamConnection) -> Optional[Union[str, bytes]]:
        """
        Wait for the next frame.

        Returns None when the connection was closed by our own cancel().
        """
        try:
            if self._receive_timeout:
                return await asyncio.wait_for(connection.recv(), self._receive_timeout)
            return await connection.recv()
        except asyncio.TimeoutError:
            raise StreamTimeoutError(
                f"No response from the AI service for {self._receive_timeout:.0f}s."
            )
        except (ConnectionClosed, OSError) as e:
            if self._state is StreamState.CANCELLED:
                return None
            raise TransportError(
                f"Connection closed before the answer was complete ({e})."
            )

    async def _close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except (WebSocketException, OSError) as e:
            logger.debug("stream_close_failed", session_id=self.session_id, error=str(e))

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def stream(self, prompt: Prompt) -> AsyncIterator[str]:
        """
        Send the prompt and yield text deltas in arrival order.

        Returns normally on completion or after cancel().

        Raises:
            ConfigurationError: Credential missing
            VendorError: Vendor reported a non-zero code
            TransportError: Handshake failed or the connection dropped
            RuntimeError: The session was already used
        """
        if self._state is StreamState.CANCELLED:
            return
        if self._state is not StreamState.IDLE:
            raise RuntimeError("A streaming session can only be started once")

        try:
            if not self._credential.is_complete:
                raise ConfigurationError("AI API credentials are not configured. Please add them in settings.")
            signed = self._signer.sign(self._credential, self._endpoint, "GET")
        except ConfigurationError as e:
            await self._fail(e)
            raise

        self._transition(StreamState.CONNECTING)
        await self._audit(AuditEventBuilder.stream_started(
            session_id=self.session_id,
            domain=self._credential.domain_or(self._default_domain),
            correlation_id=self._correlation_id,
        ))

        try:
            connection = await self._connect(signed.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            error = TransportError(
                f"Connection error occurred ({e}). Please check your network or API keys."
            )
            if await self._fail(error):
                raise error
            return

        self._connection = connection
        if self._state.is_terminal:
            # Cancelled during the handshake
            await self._close()
            return

        try:
            await connection.send(json.dumps(self.build_frame(prompt), ensure_ascii=False))
            self._transition(StreamState.STREAMING)

            while not self._state.is_terminal:
                raw = await self._receive(connection)
                if raw is None or self._state.is_terminal:
                    break

                frame = self._decode(raw)
                if frame is None:
                    continue

                header = frame.get("header") or {}
                if not isinstance(header, dict):
                    logger.warning("stream_frame_malformed", session_id=self.session_id)
                    continue

                code = header.get("code", 0)
                if code != 0:
                    raise VendorError(str(header.get("message") or "unknown error"), code)

                delta = extract_delta(frame)
                if delta:
                    self._chunks.append(delta)
                    yield delta
                    if self._state.is_terminal:
                        break

                if header.get("status") == STATUS_COMPLETE:
                    if self._transition(StreamState.COMPLETED):
                        await self._audit(AuditEventBuilder.stream_completed(
                            session_id=self.session_id,
                            char_count=len(self.text),
                            correlation_id=self._correlation_id,
                        ))
                    break
        except (TransportError, VendorError) as e:
            if await self._fail(e):
                raise
        except (ConnectionClosed, OSError) as e:
            # send() on a dead socket
            error = TransportError(f"Connection closed before the answer was complete ({e}).")
            if await self._fail(error):
                raise error
        finally:
            await self._close()

    async def run(
        self,
        prompt: Prompt,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Stream to completion and return the joined text."""
        async for delta in self.stream(prompt):
            if on_token:
                on_token(delta)
        return self.text

    def cancel(self) -> None:
        """
        Stop the session now.

        After this returns no delta, completion or error is delivered.
        Safe to call at any time, any number of times.
        """
        if not self._transition(StreamState.CANCELLED):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        for coro in (
            self._close(),
            self._audit(AuditEventBuilder.stream_cancelled(
                session_id=self.session_id,
                char_count=len(self.text),
                correlation_id=self._correlation_id,
            )),
        ):
            task = loop.create_task(coro)
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def start(
        self,
        prompt: Prompt,
        on_token: Callable[[str], None],
        on_complete: Callable[[], None],
        on_error: Callable[[str], None],
        format_error: Callable[[GatewayError], str] = str,
    ) -> Callable[[], None]:
        """
        Callback-style entry point. Must be called from a running loop.

        on_complete or on_error fires at most once, and neither fires
        after the returned cancel function has been called. on_error
        receives format_error(exc).

        Returns:
            cancel function
        """
        async def _drive() -> None:
            try:
                async for delta in self.stream(prompt):
                    on_token(delta)
            except GatewayError as e:
                if self._state is StreamState.FAILED:
                    on_error(format_error(e))
                return
            if self._state is StreamState.COMPLETED:
                on_complete()

        self._task = asyncio.get_running_loop().create_task(_drive())
        return self.cancel
