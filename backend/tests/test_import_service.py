"""
Batch import tests.

Rows are applied in order, each as its own transition; a bad row is
reported and the batch keeps going.
"""

import pytest

from tiretrack.extensions import db
from tiretrack.models import Container, TireModel
from tiretrack.services import import_service, ledger_service, location_service, registry_service
from tiretrack.services.transition_service import Dispatch, apply_transition


def _row(barcode, model="Slick S7", container="C-A", **extra):
    row = {"barcode": barcode, "model_name": model, "container_name": container}
    row.update(extra)
    return row


class TestImportRows:

    def test_creates_tires_models_and_containers(self, db_session):
        result = import_service.import_rows([
            _row("I1"),
            _row("I2", model="Wet W3"),
            _row("I3", container="C-B"),
        ], performed_by="importer")

        assert result.created == 3
        assert result.processed == 3
        assert result.errors == []
        assert db.session.query(TireModel).filter_by(name="Wet W3").count() == 1

        new_container = db.session.query(Container).filter_by(name="C-B").one()
        assert new_container.capacity == 50  # DEFAULT_CONTAINER_CAPACITY in test config
        assert location_service.occupancy(new_container.id) == 1

        entry = ledger_service.history_for_tire(registry_service.get_tire_by_barcode("I1").id)[0]
        assert entry.performed_by == "importer"
        assert entry.metadata_json["import_row"]["barcode"] == "I1"
        assert entry.metadata_json["row_number"] == 1

    def test_later_row_retargets_earlier_barcode(self, db_session):
        """
        SCENARIO: The same barcode appears twice with different containers
        EXPECTED: Applied in order; the tire ends up in the second container
        """
        result = import_service.import_rows([
            _row("I1", container="C-A"),
            _row("I1", container="C-B"),
        ])

        assert result.created == 1
        assert result.updated == 1
        tire = registry_service.get_tire_by_barcode("I1")
        c_b = db.session.query(Container).filter_by(name="C-B").one()
        assert tire.location_ref == c_b.id
        assert [e.event_type for e in ledger_service.history_for_tire(tire.id)] == ["moved", "created"]

    def test_skip_policy_leaves_existing_tire(self, db_session):
        import_service.import_rows([_row("I1", container="C-A")])

        result = import_service.import_rows([_row("I1", container="C-B")], policy="skip")

        assert result.skipped == 1
        assert result.updated == 0
        tire = registry_service.get_tire_by_barcode("I1")
        c_a = db.session.query(Container).filter_by(name="C-A").one()
        assert tire.location_ref == c_a.id
        assert len(ledger_service.history_for_tire(tire.id)) == 1

    @pytest.mark.parametrize("discard_policy,expected_status,expected_kind", [
        ("reuse", "reusable", "container"),
        ("dispose", "disposed", "none"),
    ])
    def test_discarded_condition(self, db_session, discard_policy, expected_status, expected_kind):
        result = import_service.import_rows(
            [_row("I1", condition="Descartado")],
            discard_policy=discard_policy,
        )

        assert result.created == 1
        tire = registry_service.get_tire_by_barcode("I1")
        assert tire.status == expected_status
        assert tire.location_kind == expected_kind
        assert [e.event_type for e in ledger_service.history_for_tire(tire.id)] == ["status_changed", "created"]

    def test_row_errors_do_not_stop_batch(self, db_session, driver):
        import_service.import_rows([_row("I1")])
        apply_transition(Dispatch(barcode="I1", holder_ref=driver.id, position="FL"))

        result = import_service.import_rows([
            _row("I1", container="C-B"),
            _row("I2", model=""),
            _row("I3", condition="guardado"),
            _row("I4"),
        ])

        assert result.created == 1
        assert [e.row_number for e in result.errors] == [1, 2, 3]
        assert [e.code for e in result.errors] == ["not_available", "invalid_command", "invalid_command"]
        assert registry_service.find_tire_by_barcode("I2") is None
        assert registry_service.get_tire_by_barcode("I1").status == "with_operator"
        assert registry_service.get_tire_by_barcode("I4").status == "in_stock"
        assert result.to_dict()["error_count"] == 3

    def test_full_container_reported_per_row(self, db_session):
        container = location_service.create_container("Tiny", 1)
        db.session.commit()

        result = import_service.import_rows([
            _row("I1", container="Tiny"),
            _row("I2", container="Tiny"),
        ])

        assert result.created == 1
        assert result.errors[0].code == "capacity_exceeded"
        assert location_service.occupancy(container.id) == 1

    def test_blank_rows_ignored_and_non_dict_rows_reported(self, db_session):
        result = import_service.import_rows([
            _row(""),
            {"barcode": None},
            "not a row",
            _row("I1"),
        ])

        assert result.created == 1
        assert len(result.errors) == 1
        assert result.errors[0].code == "invalid_row"
        assert result.errors[0].row_number == 3

    def test_invalid_policy_reported(self, db_session):
        result = import_service.import_rows([_row("I1")], policy="overwrite")
        assert result.errors[0].code == "invalid_command"

    def test_none_rows_rejected(self, db_session):
        with pytest.raises(import_service.BatchImportError):
            import_service.import_rows(None)


class TestRowToCommand:

    def test_header_aliases_and_numeric_barcode(self):
        command = import_service.row_to_command(
            {"Codigo": 123456.0, "Modelo": "Slick S7", "Conteiner": " C-9 ", "Condicao": "estoque"},
            policy="update_existing",
        )
        assert command.barcode == "123456"
        assert command.model_name == "Slick S7"
        assert command.container_name == "C-9"
        assert command.condition == "stock"

    def test_defaults_fill_missing_columns(self):
        command = import_service.row_to_command(
            {"barcode": "X1"},
            policy="skip",
            default_model="Slick S7",
            default_container="Main",
        )
        assert command.model_name == "Slick S7"
        assert command.container_name == "Main"
        assert command.policy == "skip"
