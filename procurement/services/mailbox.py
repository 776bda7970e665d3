# procurement/services/mailbox.py
"""
Client IMAP de la boîte de réception des réponses fournisseurs
et décodage des messages entrants.
"""

import email
import imaplib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email import policy
from email.utils import parseaddr, parsedate_to_datetime

from procurement.config import get_settings
from procurement.exceptions import ConnectionFailed, ParseFailed

logger = logging.getLogger(__name__)
settings = get_settings()

_HTML_TAG = re.compile(r"<[^>]+>")


@dataclass
class InboundEmail:
    uid: str
    sender: str
    subject: str
    body: str
    received_at: datetime


def _html_to_text(html_body: str) -> str:
    text = re.sub(r"(?i)<br\s*/?>|</p>", "\n", html_body)
    text = _HTML_TAG.sub("", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def parse_message(uid: str, raw: bytes) -> InboundEmail:
    """
    Décode un message RFC 822 : expéditeur, sujet, corps texte (HTML en repli), date.

    Raises:
        ParseFailed: message illisible ou sans expéditeur
    """
    if not raw:
        raise ParseFailed(f"Message {uid} sans contenu")

    try:
        msg = email.message_from_bytes(raw, policy=policy.default)

        _, sender = parseaddr(str(msg.get("From", "")))
        subject = str(msg.get("Subject", "") or "").strip()

        body = ""
        part = msg.get_body(preferencelist=("plain", "html"))
        if part is not None:
            content = part.get_content()
            body = content if part.get_content_type() == "text/plain" else _html_to_text(content)

        received_at = datetime.utcnow()
        date_header = msg.get("Date")
        if date_header:
            try:
                parsed = parsedate_to_datetime(str(date_header))
                if parsed.tzinfo is not None:
                    parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
                received_at = parsed
            except (TypeError, ValueError):
                logger.debug(f"Date illisible pour le message {uid}: {date_header!r}")
    except Exception as e:
        raise ParseFailed(f"Message {uid} illisible: {e}") from e

    if not sender or "@" not in sender:
        raise ParseFailed(f"Message {uid} sans expediteur exploitable")

    return InboundEmail(
        uid=uid,
        sender=sender.strip().lower(),
        subject=subject,
        body=body.strip(),
        received_at=received_at,
    )


class MailboxClient:
    """Session IMAP : connexion, lecture des non-lus, marquage lu, déconnexion"""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        mailbox: str | None = None,
    ):
        self.host = host or settings.IMAP_HOST
        self.port = port or settings.IMAP_PORT
        self.user = user or settings.IMAP_USER
        self.password = password or settings.IMAP_PASSWORD
        self.mailbox = mailbox or settings.IMAP_MAILBOX
        self.conn: imaplib.IMAP4_SSL | None = None

    def connect(self) -> None:
        try:
            self.conn = imaplib.IMAP4_SSL(self.host, self.port, timeout=30)
            self.conn.login(self.user, self.password)
        except (imaplib.IMAP4.error, OSError) as e:
            self.conn = None
            raise ConnectionFailed(f"Connexion IMAP impossible ({self.host}:{self.port}): {e}") from e
        logger.info(f"📬 Connecte a {self.host} en tant que {self.user}")

    def select_inbox(self) -> None:
        status, data = self.conn.select(self.mailbox)
        if status != "OK":
            raise ConnectionFailed(f"Selection de {self.mailbox} impossible: {data}")

    def fetch_unseen(self) -> list[tuple[str, bytes]]:
        """UID + source complète des messages non lus (BODY.PEEK : ne marque pas lu)"""
        status, data = self.conn.uid("search", None, "UNSEEN")
        if status != "OK":
            raise ConnectionFailed(f"Recherche UNSEEN echouee: {status}")

        uids = data[0].split() if data and data[0] else []
        messages = []
        for uid_bytes in uids:
            uid = uid_bytes.decode()
            status, fetched = self.conn.uid("fetch", uid_bytes, "(BODY.PEEK[])")
            if status != "OK" or not fetched or not isinstance(fetched[0], tuple):
                logger.warning(f"Message {uid} non recupere ({status}), ignore pour ce cycle")
                continue
            messages.append((uid, fetched[0][1]))
        return messages

    def mark_seen(self, uid: str) -> None:
        status, _ = self.conn.uid("store", uid, "+FLAGS", "(\\Seen)")
        if status != "OK":
            raise imaplib.IMAP4.error(f"Marquage lu echoue pour {uid}: {status}")

    def logout(self) -> None:
        """Ferme la session ; ne lève jamais"""
        if self.conn is None:
            return
        try:
            self.conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug(f"Logout IMAP: {e}")
        finally:
            self.conn = None

    def abort(self) -> None:
        """Coupe la socket depuis un autre thread (arrêt en plein cycle)"""
        conn = self.conn
        if conn is None:
            return
        try:
            conn.shutdown()
        except OSError as e:
            logger.debug(f"Abort IMAP: {e}")
