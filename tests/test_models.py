from app.models import IntercomAccessLog, IntercomTemporaryPin, IntercomTemporaryPinUsage


def _foreign_key(model, column: str):
    [fk] = model.__table__.c[column].foreign_keys
    return fk


def test_temporary_pins_survive_their_creator() -> None:
    column = IntercomTemporaryPin.__table__.c.created_by_user_id
    assert column.nullable is True
    assert _foreign_key(IntercomTemporaryPin, "created_by_user_id").ondelete == "SET NULL"


def test_usage_ledger_blocks_pin_deletion() -> None:
    assert _foreign_key(IntercomTemporaryPinUsage, "temporary_pin_id").ondelete == "RESTRICT"


def test_access_log_accepts_unknown_intercoms() -> None:
    assert not IntercomAccessLog.__table__.c.intercom_id.foreign_keys
