"""
Tests for TrainingDataExporter and ModelTrainingService.
"""

from datetime import date

import pytest

from sla_sentinel.config import RequestState
from sla_sentinel.core import InsufficientTrainingData, ValidationException
from sla_sentinel.prediction.application import ModelTrainingService, TrainingDataExporter
from sla_sentinel.prediction.domain import ServiceRequest, SlaConfig
from sla_sentinel.prediction.infrastructure import SQLAlchemyRequestRepository

from conftest import FakePredictionGateway, seed_request

CONFIG = SlaConfig(id=3, code="SLA-ALTA", request_type="ALTA_PERSONAL", days_threshold=7)


def closed(request_id: int, tag="CUMPLE_SLA", sla_days=4, config=CONFIG, state=RequestState.CLOSED, **kwargs):
    return ServiceRequest(
        id=request_id,
        submission_date=date(2026, 2, 1),
        state=state,
        sla_config_id=config.id if config else 9,
        role_id=2,
        intake_date=date(2026, 2, 5),
        sla_days=sla_days,
        compliance_tag=tag,
        sla_config=config,
        **kwargs
    )


class TestExporter:

    def test_maps_request_to_training_sample(self):
        sample = TrainingDataExporter().to_sample(closed(1, tag="NO_CUMPLE_SLA", role_name="Analista"))

        assert sample.id_solicitud == 1
        assert sample.codigo_sla == "SLA-ALTA"
        assert sample.tipo_solicitud == "ALTA_PERSONAL"
        assert sample.dias_umbral == 7
        assert sample.nombre_rol == "Analista"
        assert sample.num_dias_sla == 4
        assert sample.estado_cumplimiento_sla == "NO_CUMPLE_SLA"
        assert sample.incumplio == 1

    def test_met_label_is_zero(self):
        assert TrainingDataExporter().to_sample(closed(1, tag="CUMPLE_SLA")).incumplio == 0

    def test_fallbacks_without_config_or_role(self):
        sample = TrainingDataExporter(default_threshold_days=5).to_sample(closed(1, config=None))

        assert sample.codigo_sla == "SLA9"
        assert sample.tipo_solicitud == "DESCONOCIDO"
        assert sample.nombre_rol == "DESCONOCIDO"
        assert sample.dias_umbral == 5

    @pytest.mark.parametrize("request_", [
        closed(1, tag=None),
        closed(2, tag="PENDIENTE"),
        closed(3, sla_days=None),
        closed(4, state=RequestState.ACTIVE),
    ])
    def test_unlabeled_or_open_requests_are_not_exported(self, request_):
        assert not TrainingDataExporter().is_exportable(request_)

    def test_export_filters_and_keeps_range(self):
        payload = TrainingDataExporter().export(
            [closed(1), closed(2, tag=None), closed(3, tag="NO_CUMPLE_SLA")],
            date(2026, 1, 1),
            date(2026, 3, 31)
        )

        assert [s.id_solicitud for s in payload.solicitudes] == [1, 3]
        assert payload.fecha_desde == date(2026, 1, 1)
        assert payload.fecha_hasta == date(2026, 3, 31)


class TestModelTrainingService:

    async def test_rejects_inverted_range(self, test_db, clock):
        service = ModelTrainingService(SQLAlchemyRequestRepository(test_db), FakePredictionGateway(), clock)

        with pytest.raises(ValidationException):
            await service.train(date(2026, 3, 1), date(2026, 2, 1))

    async def test_rejects_future_end_date(self, test_db, clock):
        service = ModelTrainingService(SQLAlchemyRequestRepository(test_db), FakePredictionGateway(), clock)

        with pytest.raises(ValidationException):
            await service.train(date(2026, 1, 1), date(2026, 10, 20))

    async def test_insufficient_samples(self, test_db, clock):
        for i in range(1, 4):
            await seed_request(
                test_db, i, date(2026, 2, i), state=RequestState.CLOSED,
                intake_date=date(2026, 2, 10), sla_days=3, compliance_tag="CUMPLE_SLA"
            )
        gateway = FakePredictionGateway()
        service = ModelTrainingService(SQLAlchemyRequestRepository(test_db), gateway, clock)

        with pytest.raises(InsufficientTrainingData) as exc_info:
            await service.train(date(2026, 1, 1), date(2026, 3, 31))

        assert exc_info.value.sample_count == 3
        assert gateway.trained == []

    async def test_trains_on_closed_requests_in_range(self, test_db, clock):
        for i in range(1, 13):
            await seed_request(
                test_db, i, date(2026, 2, i), state=RequestState.CLOSED,
                intake_date=date(2026, 2, 20), sla_days=4,
                compliance_tag="NO_CUMPLE_SLA" if i % 3 == 0 else "CUMPLE_SLA"
            )
        # Out of range and still active
        await seed_request(test_db, 50, date(2025, 12, 1), state=RequestState.CLOSED, sla_days=3, compliance_tag="CUMPLE_SLA")
        await seed_request(test_db, 51, date(2026, 2, 3))

        gateway = FakePredictionGateway()
        service = ModelTrainingService(SQLAlchemyRequestRepository(test_db), gateway, clock)

        outcome = await service.train(date(2026, 1, 1), date(2026, 3, 31))

        assert outcome.success is True
        assert outcome.records_used == 12
        assert outcome.model_version == "Docker-v2"
        assert outcome.metrics["f1_score"] == 0.8
        assert outcome.date_range == "2026-01-01 a 2026-03-31"
        sent = gateway.trained[0]
        assert {s.id_solicitud for s in sent.solicitudes} == set(range(1, 13))
        assert sum(s.incumplio for s in sent.solicitudes) == 4
