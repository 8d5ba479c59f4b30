"""
Alerting DTOs
=============

API request/response models for alerts, the email log and broadcasts.
Field names on the wire follow the existing front end (camelCase aliases).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from sla_sentinel.prediction.application.dto import ApiModel


class AlertResponse(ApiModel):
    id: int
    request_id: int = Field(..., alias="idSolicitud")
    alert_type: str = Field(..., alias="tipoAlerta")
    level: str = Field(..., alias="nivel")
    message: str = Field(..., alias="mensaje")
    state: str = Field(..., alias="estado")
    email_sent: bool = Field(..., alias="correoEnviado")
    created_at: Optional[datetime] = Field(None, alias="fechaCreacion")
    read_at: Optional[datetime] = Field(None, alias="fechaLectura")
    sla_code: Optional[str] = Field(None, alias="codigoSla")
    role_name: Optional[str] = Field(None, alias="rolRegistro")
    contact_name: Optional[str] = Field(None, alias="nombrePersonal")
    contact_email: Optional[str] = Field(None, alias="correoPersonal")


class SyncReportResponse(ApiModel):
    created: int = Field(..., alias="creadas")
    updated: int = Field(..., alias="actualizadas")
    unchanged: int = Field(..., alias="sinCambios")
    resolved: int = Field(..., alias="resueltas")
    failed: int = Field(..., alias="fallidas")
    emails_sent: int = Field(..., alias="correosEnviados")
    evaluated: int = Field(..., alias="evaluadas")
    skipped: int = Field(..., alias="omitidas")


class EmailLogResponse(ApiModel):
    id: int
    kind: str = Field(..., alias="tipo")
    recipients: List[str] = Field(default_factory=list, alias="destinatarios")
    recipients_count: int = Field(..., alias="cantidadDestinatarios")
    state: str = Field(..., alias="estado")
    subject: str = Field("", alias="asunto")
    error_detail: Optional[str] = Field(None, alias="detalleError")
    sent_at: Optional[datetime] = Field(None, alias="fechaEnvio")


class BroadcastRequest(ApiModel):
    subject: str = Field(..., alias="asunto", min_length=1, max_length=255)
    html_body: str = Field(..., alias="mensajeHtml", min_length=1)
    role_id: Optional[int] = Field(None, alias="idRol")
    sla_config_id: Optional[int] = Field(None, alias="idSla")


class BroadcastResponse(ApiModel):
    recipients: int = Field(..., alias="destinatarios")
    sent: int = Field(..., alias="enviados")
    failed: int = Field(..., alias="fallidos")
    state: str = Field(..., alias="estado")
