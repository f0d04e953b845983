"""Summary: Mail gateway interfaces and implementations.

Importance: Encapsulates inbox ingestion and reply delivery behind one async interface.
Alternatives: Rely solely on provider SDKs with vendor lock-in.
"""

from __future__ import annotations

import asyncio
import base64
import html
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import parseaddr
from pathlib import Path
from typing import Any

from ticketdesk.errors import AuthExpired, SendFailed
from ticketdesk.models import Attachment, Ticket, TicketStatus, parse_timestamp


logger = logging.getLogger(__name__)

INBOX_QUERY = "label:INBOX -category:promotions -category:social newer_than:30d"

# 1x1 transparent PNG served by the mock gateway for image attachments.
_PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class MailGateway(ABC):
    """Summary: Abstract interface for the mail system.

    Importance: Standardizes fetch and send across Gmail and mocked providers.
    Alternatives: Use provider-specific classes directly in services.
    """

    @abstractmethod
    async def fetch_recent(self, limit: int) -> list[Ticket]:
        """Summary: Fetch recent inbox messages as tickets.

        Importance: Drives the inbox synchronization flow.
        Alternatives: Fetch messages by history cursor instead.
        """

    @abstractmethod
    async def fetch_attachment_bytes(self, ticket_id: str, attachment_id: str) -> bytes:
        """Summary: Download the raw bytes of one attachment."""

    @abstractmethod
    async def send_reply(
        self,
        recipient: str,
        subject: str,
        thread_id: str,
        originating_message_id: str,
        body: str,
    ) -> bool:
        """Summary: Send a threaded reply to the customer.

        Importance: Replies must stay in the customer's original thread.
        Alternatives: Send standalone messages and lose threading.
        """


class MockMailGateway(MailGateway):
    """Summary: Loads inbox messages from a local JSON fixture and records sends.

    Importance: Supports offline testing and demos.
    Alternatives: Use SQLite fixtures or generate synthetic messages.
    """

    def __init__(self, fixture_path: Path) -> None:
        self._fixture_path = fixture_path
        self.sent: list[dict[str, str]] = []
        self.fail_recipients: set[str] = set()

    async def fetch_recent(self, limit: int) -> list[Ticket]:
        data = json.loads(self._fixture_path.read_text(encoding="utf-8"))
        tickets = [_ticket_from_fixture(item) for item in data]
        return tickets[:limit]

    async def fetch_attachment_bytes(self, ticket_id: str, attachment_id: str) -> bytes:
        return _PLACEHOLDER_PNG

    async def send_reply(
        self,
        recipient: str,
        subject: str,
        thread_id: str,
        originating_message_id: str,
        body: str,
    ) -> bool:
        if recipient in self.fail_recipients:
            raise SendFailed(f"Delivery to {recipient} rejected")
        self.sent.append(
            {
                "recipient": recipient,
                "subject": reply_subject(subject),
                "thread_id": thread_id,
                "in_reply_to": originating_message_id,
                "body": body,
            }
        )
        return True


class GmailGateway(MailGateway):
    """Summary: Reads and replies to mail via the Gmail API using OAuth tokens.

    Importance: Enables OAuth-based ingestion and threaded replies.
    Alternatives: Use IMAP and SMTP with app passwords.
    """

    def __init__(self, access_token: str, base_url: str) -> None:
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")

    async def fetch_recent(self, limit: int) -> list[Ticket]:
        return await asyncio.to_thread(self._fetch_recent_sync, limit)

    async def fetch_attachment_bytes(self, ticket_id: str, attachment_id: str) -> bytes:
        url = f"{self._base_url}/users/me/messages/{ticket_id}/attachments/{attachment_id}"
        payload = await asyncio.to_thread(_gmail_api_request, url, self._access_token)
        data = payload.get("data", "")
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))

    async def send_reply(
        self,
        recipient: str,
        subject: str,
        thread_id: str,
        originating_message_id: str,
        body: str,
    ) -> bool:
        """Summary: Send a reply through users.messages.send.

        Importance: Threading relies on threadId plus In-Reply-To and References.
        Alternatives: Use SMTP and set the headers manually.
        """

        raw = build_reply_raw(recipient, subject, originating_message_id, body)
        url = f"{self._base_url}/users/me/messages/send"
        try:
            await asyncio.to_thread(
                _gmail_api_request,
                url,
                self._access_token,
                "POST",
                {"raw": raw, "threadId": thread_id},
            )
        except RuntimeError as exc:
            raise SendFailed(str(exc)) from exc
        logger.info("Sent reply to %s in thread %s.", recipient, thread_id)
        return True

    def _fetch_recent_sync(self, limit: int) -> list[Ticket]:
        query = urllib.parse.urlencode({"maxResults": limit, "q": INBOX_QUERY})
        payload = _gmail_api_request(f"{self._base_url}/users/me/messages?{query}", self._access_token)
        tickets: list[Ticket] = []
        for item in payload.get("messages", []):
            message_id = item.get("id")
            if not message_id:
                continue
            detail_url = f"{self._base_url}/users/me/messages/{message_id}?format=full"
            try:
                message_payload = _gmail_api_request(detail_url, self._access_token)
            except RuntimeError as exc:
                logger.warning("Skipping message %s: %s", message_id, exc)
                continue
            tickets.append(_parse_gmail_message(message_payload))
        return tickets


class GuardedMailGateway(MailGateway):
    """Summary: Latches authorization expiry for the wrapped gateway.

    Importance: After a 401 every mail operation is refused until re-authorization.
    Alternatives: Let each caller track token state.
    """

    def __init__(self, inner: MailGateway) -> None:
        self._inner = inner
        self._expired = False

    @property
    def expired(self) -> bool:
        return self._expired

    def reauthorize(self, inner: MailGateway | None = None) -> None:
        if inner is not None:
            self._inner = inner
        self._expired = False
        logger.info("Mail authorization restored.")

    async def fetch_recent(self, limit: int) -> list[Ticket]:
        self._check()
        try:
            return await self._inner.fetch_recent(limit)
        except AuthExpired:
            self._latch()
            raise

    async def fetch_attachment_bytes(self, ticket_id: str, attachment_id: str) -> bytes:
        self._check()
        try:
            return await self._inner.fetch_attachment_bytes(ticket_id, attachment_id)
        except AuthExpired:
            self._latch()
            raise

    async def send_reply(
        self,
        recipient: str,
        subject: str,
        thread_id: str,
        originating_message_id: str,
        body: str,
    ) -> bool:
        self._check()
        try:
            return await self._inner.send_reply(
                recipient, subject, thread_id, originating_message_id, body
            )
        except AuthExpired:
            self._latch()
            raise

    def _check(self) -> None:
        if self._expired:
            raise AuthExpired("Re-authorization required before mail operations")

    def _latch(self) -> None:
        if not self._expired:
            logger.warning("Mail authorization expired; mail operations suspended.")
        self._expired = True


def reply_subject(subject: str) -> str:
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def build_reply_raw(recipient: str, subject: str, originating_message_id: str, body: str) -> str:
    """Summary: Build a base64url-encoded RFC 2822 reply.

    Importance: Gmail's send endpoint expects the raw message in URL-safe base64.
    Alternatives: Upload the MIME message with the multipart upload endpoint.
    """

    message = EmailMessage()
    message["To"] = recipient
    message["Subject"] = reply_subject(subject)
    if originating_message_id:
        message["In-Reply-To"] = originating_message_id
        message["References"] = originating_message_id
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


def split_sender(raw: str) -> tuple[str, str]:
    """Summary: Split a From header into display name and address."""

    name, address = parseaddr(raw)
    address = address or raw.strip()
    return name.strip('" ') or address, address


def _gmail_api_request(
    url: str,
    access_token: str,
    method: str = "GET",
    payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Summary: Call the Gmail API and decode its JSON answer.

    Importance: Maps 401 to AuthExpired so callers can latch re-authorization.
    Alternatives: Use the google-api-python-client SDK.
    """

    headers = {"Authorization": f"Bearer {access_token}"}
    data = None
    if payload is not None:
        headers["Content-Type"] = "application/json"
        data = json.dumps(payload).encode("utf-8")
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=10) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        if exc.code == 401:
            raise AuthExpired() from exc
        error_body = exc.read().decode("utf-8")
        raise RuntimeError(f"Gmail API request failed: {error_body or exc.reason}") from exc
    except urllib.error.URLError as exc:
        raise RuntimeError(f"Gmail API unreachable: {exc.reason}") from exc
    return json.loads(raw) if raw else {}


def _parse_gmail_message(message: dict[str, Any]) -> Ticket:
    """Summary: Parse a Gmail message payload into a Ticket.

    Importance: Normalizes Gmail payloads into the core ticket model.
    Alternatives: Store raw Gmail payloads and parse later.
    """

    payload = message.get("payload") or {}
    headers = _parse_gmail_headers(payload.get("headers", []))
    sender_name, sender = split_sender(headers.get("From", ""))
    internal_date = message.get("internalDate")
    if internal_date:
        timestamp = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
    else:
        timestamp = datetime.now(timezone.utc)
    is_read = "UNREAD" not in message.get("labelIds", [])
    body = _extract_gmail_body(payload) or message.get("snippet", "")
    return Ticket(
        id=message.get("id", ""),
        thread_id=message.get("threadId", ""),
        message_id=headers.get("Message-ID", headers.get("Message-Id", "")),
        sender=sender,
        sender_name=sender_name,
        subject=headers.get("Subject", "(No Subject)"),
        body=body,
        timestamp=timestamp,
        status=TicketStatus.IN_PROGRESS if is_read else TicketStatus.NEW,
        attachments=_extract_attachments(payload),
        is_read=is_read,
    )


def _parse_gmail_headers(headers: list[dict[str, Any]]) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for header in headers:
        name = header.get("name")
        value = header.get("value")
        if name and value:
            normalized[name] = value
    return normalized


def _extract_gmail_body(payload: dict[str, Any]) -> str:
    """Summary: Extract a plain text body from a Gmail payload.

    Importance: HTML-only messages are reduced to readable text for the oracle.
    Alternatives: Store the snippet only for Gmail messages.
    """

    text_parts: list[str] = []
    html_parts: list[str] = []
    for part in _walk_gmail_parts(payload):
        if part.get("filename"):
            continue
        data = part.get("body", {}).get("data")
        if not data:
            continue
        decoded = _decode_base64url(data)
        if part.get("mimeType") == "text/plain":
            text_parts.append(decoded)
        elif part.get("mimeType") == "text/html":
            html_parts.append(_strip_html(decoded))
    chosen = text_parts or html_parts
    return "\n".join(item.strip() for item in chosen if item.strip()).strip()


def _extract_attachments(payload: dict[str, Any]) -> list[Attachment]:
    attachments: list[Attachment] = []
    for part in _walk_gmail_parts(payload):
        body = part.get("body", {})
        if part.get("filename") and body.get("attachmentId"):
            attachments.append(
                Attachment(
                    id=body["attachmentId"],
                    filename=part["filename"],
                    mime_type=part.get("mimeType", "application/octet-stream"),
                    size=int(body.get("size", 0)),
                )
            )
    return attachments


def _walk_gmail_parts(payload: dict[str, Any]) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = [payload]
    for part in payload.get("parts", []) or []:
        parts.extend(_walk_gmail_parts(part))
    return parts


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8", errors="ignore")


def _strip_html(markup: str) -> str:
    text = re.sub(r"<(style|script)[^>]*>.*?</\1>", "", markup, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<br\s*/?>|</p>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    return html.unescape(text)


def _ticket_from_fixture(item: dict[str, Any]) -> Ticket:
    is_read = item.get("is_read", False)
    return Ticket(
        id=item["id"],
        thread_id=item.get("thread_id", item["id"]),
        message_id=item.get("message_id", ""),
        sender=item["sender"],
        sender_name=item.get("sender_name", ""),
        subject=item["subject"],
        body=item["body"],
        timestamp=parse_timestamp(item["timestamp"]),
        status=TicketStatus.IN_PROGRESS if is_read else TicketStatus.NEW,
        attachments=[Attachment(**attachment) for attachment in item.get("attachments", [])],
        is_read=is_read,
    )
