from datetime import date

import pytest

from app.errors import ValidationError
from app.models import DocumentSequence
from app.services import receive_service, settlement_service
from app.services.document_service import next_document_number


def test_numbers_increase_within_a_day(db_session):
    day = date(2024, 3, 5)

    first = next_document_number(document_type="BILL", prefix="INV", on_date=day)
    second = next_document_number(document_type="BILL", prefix="INV", on_date=day)

    assert first == "INV-20240305-0001"
    assert second == "INV-20240305-0002"


def test_numbers_restart_each_day(db_session):
    next_document_number(document_type="BILL", prefix="INV", on_date=date(2024, 3, 5))

    assert next_document_number(document_type="BILL", prefix="INV", on_date=date(2024, 3, 6)) == "INV-20240306-0001"
    assert db_session.query(DocumentSequence).count() == 2


def test_types_have_separate_sequences(db_session):
    day = date(2024, 3, 5)
    next_document_number(document_type="BILL", prefix="INV", on_date=day)

    assert next_document_number(document_type="RETURN", prefix="RET", on_date=day) == "RET-20240305-0001"


def test_prefix_and_type_required(db_session):
    with pytest.raises(ValidationError):
        next_document_number(document_type="", prefix="INV")
    with pytest.raises(ValidationError):
        next_document_number(document_type="BILL", prefix="")


def test_bill_and_purchase_order_numbers_use_configured_prefixes(app, db_session):
    app.config["BILL_NUMBER_PREFIX"] = "SHOP1"
    try:
        first = settlement_service.next_bill_number()
        second = settlement_service.next_bill_number()
    finally:
        app.config["BILL_NUMBER_PREFIX"] = "INV"

    assert first.startswith("SHOP1-") and first.endswith("-0001")
    assert second.endswith("-0002")
    assert receive_service.next_purchase_order_no().startswith("PO-")
