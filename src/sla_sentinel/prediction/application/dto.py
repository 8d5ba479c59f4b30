"""
Prediction Application DTOs
===========================

Data Transfer Objects for the prediction module.

Two families live here:
- Predictor wire DTOs: snake_case JSON exchanged with the external
  predictor. Keys are matched case-insensitively on read.
- API DTOs: camelCase JSON served to the front end.
"""

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ========== Predictor wire DTOs ==========

class PredictorWireModel(BaseModel):
    """Base for predictor payloads: ignores unknown keys, lower-cases known ones."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def lower_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {str(k).lower(): v for k, v in data.items()}
        return data


class PredictRequestPayload(BaseModel):
    """Single-item body for ``POST /predecir``."""
    id_solicitud: int
    dias_transcurridos: int
    dias_umbral: int
    id_rol: int = 0


class PredictResponsePayload(PredictorWireModel):
    """Predictor answer for one request."""
    id_solicitud: int
    probabilidad: float = Field(..., ge=0.0, le=1.0)
    clasificacion: int = 0
    dias_restantes: Optional[float] = None
    nivel_riesgo: Optional[str] = None
    modelo_version: Optional[str] = None


class TrainingSample(BaseModel):
    """One labeled historical request."""
    id_solicitud: int
    fecha_solicitud: date
    fecha_ingreso: Optional[date] = None
    num_dias_sla: int
    codigo_sla: str
    tipo_solicitud: str
    dias_umbral: int
    id_rol_registro: Optional[int] = None
    nombre_rol: str
    estado_cumplimiento_sla: str
    incumplio: int = Field(..., ge=0, le=1)


class TrainingPayload(BaseModel):
    """Body for ``POST /modelo/reentrenar``."""
    solicitudes: List[TrainingSample]
    fecha_desde: date
    fecha_hasta: date


class TrainingMetricsPayload(PredictorWireModel):
    accuracy: float = 0.0
    f1_score: float = 0.0
    roc_auc: float = 0.0
    precision: float = 0.0
    recall: float = 0.0


class TrainResponsePayload(PredictorWireModel):
    """Predictor answer to a retraining request."""
    status: str
    modelo_version: Optional[str] = None
    registros_utilizados: int = 0
    estrategia_balanceo: Optional[str] = None
    metricas: Optional[TrainingMetricsPayload] = None
    timestamp: Optional[str] = None
    mensaje: Optional[str] = None


class PredictorHealthPayload(PredictorWireModel):
    """Predictor answer to ``GET /health``."""
    status: str
    model_loaded: bool = False
    timestamp: Optional[str] = None
    version: Optional[str] = None


# ========== API DTOs ==========

class ApiModel(BaseModel):
    """Base for API responses: built by field name, served by alias."""
    model_config = ConfigDict(populate_by_name=True)


class PredictionItem(ApiModel):
    """One enriched prediction."""
    request_id: int = Field(..., alias="idSolicitud")
    sla_code: str = Field(..., alias="codigoSla")
    request_type: str = Field(..., alias="tipoSolicitud")
    role_name: str = Field(..., alias="rolRegistro")
    threshold_days: int = Field(..., alias="diasUmbral")
    elapsed_days: int = Field(..., alias="diasTranscurridos")
    remaining_days: int = Field(..., alias="diasRestantes")
    probability: float = Field(..., alias="probabilidadIncumplimiento")
    classification: int = Field(..., alias="prediccion")
    risk_tier: str = Field(..., alias="nivelRiesgo")
    model_version: str = Field(..., alias="modeloVersion")
    submission_date: date = Field(..., alias="fechaSolicitud")
    evaluated_at: datetime = Field(..., alias="fechaPrediccion")
    risk_factors: List[str] = Field(default_factory=list, alias="factoresRiesgo")
    personnel_name: str = Field("", alias="nombrePersonal")
    personnel_email: str = Field("", alias="correoPersonal")


class SummaryResponse(ApiModel):
    """Aggregate of one evaluation cycle."""
    total_analyzed: int = Field(..., alias="totalAnalizadas")
    total_critical: int = Field(..., alias="totalCriticas")
    total_high: int = Field(..., alias="totalAltas")
    total_medium: int = Field(..., alias="totalMedias")
    total_low: int = Field(..., alias="totalBajas")
    mean_probability: float = Field(..., alias="promedioRiesgo")
    model_version: str = Field(..., alias="modeloVersion")
    evaluated_at: datetime = Field(..., alias="fechaAnalisis")


class PredictionsResponse(ApiModel):
    """Full evaluation: summary plus ranked predictions."""
    summary: SummaryResponse = Field(..., alias="resumen")
    predictions: List[PredictionItem] = Field(default_factory=list, alias="predicciones")
    skipped: int = Field(0, alias="solicitudesOmitidas")


class HealthResponse(ApiModel):
    """Predictor health as seen from this service."""
    status: str
    model_loaded: bool = Field(..., alias="modelLoaded")
    timestamp: Optional[str] = None
    version: Optional[str] = None
    circuit_state: str = Field(..., alias="estadoCircuito")


class TrainRequest(ApiModel):
    """Date range of closed requests used for retraining."""
    date_from: date = Field(..., alias="fechaDesde")
    date_to: date = Field(..., alias="fechaHasta")


class TrainingMetrics(ApiModel):
    accuracy: float
    f1_score: float = Field(..., alias="f1Score")
    roc_auc: float = Field(..., alias="rocAuc")
    precision: float
    recall: float


class TrainingResultResponse(ApiModel):
    """Outcome of a retraining request."""
    success: bool = Field(..., alias="exitoso")
    message: str = Field(..., alias="mensaje")
    model_version: Optional[str] = Field(None, alias="modeloVersion")
    records_used: int = Field(0, alias="registrosUtilizados")
    balancing_strategy: Optional[str] = Field(None, alias="estrategiaBalanceo")
    metrics: Optional[TrainingMetrics] = Field(None, alias="metricas")
    trained_at: Optional[datetime] = Field(None, alias="fechaEntrenamiento")
    date_range: str = Field(..., alias="rangoFechas")
