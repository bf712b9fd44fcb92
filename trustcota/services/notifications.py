"""
trustcota/services/notifications.py

Outbound e-mail (approval, rejection, new quotation request).

NOTES:
- Messages are plain text. Delivery goes through smtplib with the MAIL_* settings.
- MAIL_SUPPRESS_SEND=True (tests, local development) records messages in
  `outbox` instead of opening an SMTP connection.
- Callers run these methods through run_best_effort(); failures raise here and
  are turned into SideEffectResult there.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, List, Optional

from flask import Flask, current_app

from ..models import QuotationRequest, Supplier, User

logger = logging.getLogger(__name__)

SYSTEM_SIGNATURE = "TrustCota - Sistema de Compras e Cotações"


def _date_label(value) -> str:
    return value.strftime("%d/%m/%Y") if value else "A definir"


class EmailNotifier:
    def __init__(
        self,
        server: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: int = 10,
        suppress: bool = False,
    ):
        self.server = server
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.suppress = suppress
        self.outbox: List[EmailMessage] = []

    @classmethod
    def from_app(cls, app: Flask) -> "EmailNotifier":
        cfg = app.config
        return cls(
            server=cfg["MAIL_SERVER"],
            port=int(cfg["MAIL_PORT"]),
            sender=cfg["MAIL_DEFAULT_SENDER"],
            username=cfg.get("MAIL_USERNAME"),
            password=cfg.get("MAIL_PASSWORD"),
            use_tls=bool(cfg.get("MAIL_USE_TLS", True)),
            timeout=int(cfg.get("MAIL_TIMEOUT_SECONDS", 10)),
            suppress=bool(cfg.get("MAIL_SUPPRESS_SEND", False)),
        )

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------
    def _build(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(f"{body}\n\n--\n{SYSTEM_SIGNATURE}\n")
        return message

    def send(self, messages: Iterable[EmailMessage]) -> int:
        messages = list(messages)
        if not messages:
            return 0

        if self.suppress:
            self.outbox.extend(messages)
            logger.info("Mail suppressed, %d message(s) recorded", len(messages))
            return len(messages)

        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            for message in messages:
                smtp.send_message(message)

        logger.info("Sent %d message(s) via %s", len(messages), self.server)
        return len(messages)

    # -----------------------------------------------------------------
    # Notifications
    # -----------------------------------------------------------------
    def send_approval_notification(self, request: QuotationRequest, requester: Optional[User]) -> int:
        if requester is None or not requester.email:
            raise ValueError(f"Requester of {request.request_number} has no e-mail address")

        body = (
            "Sua requisição de cotação foi aprovada.\n\n"
            f"Número: {request.request_number}\n"
            f"Título: {request.title}\n"
            f"Valor aprovado: R$ {request.approved_amount or '-'}\n"
            f"Data de aprovação: {_date_label(request.approved_at)}\n"
        )
        return self.send([self._build(requester.email, f"Cotação Aprovada - {request.request_number}", body)])

    def send_rejection_notification(self, request: QuotationRequest, requester: Optional[User], reason: str) -> int:
        if requester is None or not requester.email:
            raise ValueError(f"Requester of {request.request_number} has no e-mail address")

        body = (
            "Sua requisição de cotação foi rejeitada.\n\n"
            f"Número: {request.request_number}\n"
            f"Título: {request.title}\n"
            f"Motivo: {reason}\n"
        )
        return self.send([self._build(requester.email, f"Cotação Rejeitada - {request.request_number}", body)])

    def send_quotation_request_notification(self, suppliers: Iterable[Supplier], request: QuotationRequest) -> int:
        """One message per supplier that has an e-mail address."""
        messages = []
        for supplier in suppliers:
            if not supplier.email:
                continue
            body = (
                f"Olá {supplier.contact_person or supplier.name},\n\n"
                "Temos uma nova solicitação de cotação para você.\n\n"
                f"Número: {request.request_number}\n"
                f"Título: {request.title}\n"
                f"Descrição: {request.description or '-'}\n"
                f"Urgência: {request.urgency}\n"
                f"Data limite: {_date_label(request.expected_delivery_date)}\n"
            )
            messages.append(
                self._build(supplier.email, f"Nova Solicitação de Cotação - {request.request_number}", body)
            )
        return self.send(messages)


def get_notifier() -> EmailNotifier:
    return current_app.extensions["notifier"]
