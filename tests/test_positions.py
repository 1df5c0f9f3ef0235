from decimal import Decimal

from bson.decimal128 import Decimal128

from hyper_notify.storage.positions import (
    record_from_document,
    to_float,
    totals_pipeline,
)
from hyper_notify.types import Direction, PositionRecord


def test_to_float():
    assert to_float(Decimal128("12.5")) == 12.5
    assert to_float(Decimal("-3.25")) == -3.25
    assert to_float(7) == 7.0
    assert to_float(None) == 0.0


def test_record_from_document():
    doc = {"px": 30.5, "sz": Decimal128("-120.75"), "dir": "Short"}
    assert record_from_document(doc) == PositionRecord(30.5, -120.75, Direction.SHORT)


def test_record_from_document_unknown_direction():
    assert record_from_document({"px": 1.0, "sz": 1.0, "dir": "Flat"}) is None
    assert record_from_document({"px": 1.0, "sz": 1.0}) is None


def test_totals_pipeline_groups_both_sides():
    match, group, project = totals_pipeline()
    assert match == {"$match": {"dir": {"$in": ["Long", "Short"]}}}
    assert group["$group"]["_id"] is None
    assert group["$group"]["Long"] == {"$sum": {"$cond": [{"$eq": ["$dir", "Long"]}, "$sz", 0]}}
    assert set(project["$project"]) == {"_id", "Long", "Short"}
