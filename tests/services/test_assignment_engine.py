"""Tests for weight classification and tracking number assignment."""

import threading

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import sessionmaker

from src.db.models import AuditLog, TrackingClass
from src.errors import ConflictError, NoAvailableTrackingNumberError, NotFoundError, ValidationError
from src.services.assignment_engine import (
    DEFAULT_TRACKING_URL_TEMPLATE,
    TrackingAssignmentEngine,
    WeightPolicy,
    classify_weight,
    compute_order_weight,
)
from src.services.audit_service import ASSIGNMENT_ERROR_LOG, ASSIGNMENT_LOG, AuditService
from src.services.order_source import TRACKING_META_KEY, SqlOrderDataSource, parse_weight
from src.services.tracking_pool import TrackingPoolStore
from tests.helpers import add_entries, add_order, add_product


@pytest.fixture
def source(db_session) -> SqlOrderDataSource:
    return SqlOrderDataSource(db_session)


@pytest.fixture
def engine(db_session, source, log_dir) -> TrackingAssignmentEngine:
    return TrackingAssignmentEngine(
        db_session, source, audit=AuditService(db_session, event_log_dir=log_dir)
    )


def bound_number(source: SqlOrderDataSource, order_id: str) -> str | None:
    return source.get_order_meta(source.get_order(order_id), TRACKING_META_KEY)


class TestParseWeight:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("250", 250.0),
            (" 1000.5 ", 1000.5),
            (750, 750.0),
            ("", None),
            ("approx 1kg", None),
            ("nan", None),
            (None, None),
            (True, None),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_weight(raw) == expected


class TestClassifyWeight:
    @pytest.mark.parametrize(
        "weight,expected",
        [
            (0.0, TrackingClass.EG),
            (1000.0, TrackingClass.EG),
            (1000.01, TrackingClass.CG),
            (None, TrackingClass.CG),
        ],
    )
    def test_threshold_is_inclusive(self, weight, expected):
        assert classify_weight(weight) == expected

    def test_custom_threshold(self):
        assert classify_weight(600.0, threshold_grams=500.0) == TrackingClass.CG


class TestComputeOrderWeight:
    def test_sums_quantity_times_weight(self, db_session, source):
        add_product(db_session, "p1", weight="400")
        add_product(db_session, "p2", weight="150")
        add_order(db_session, "1", items=[("p1", 2), ("p2", 1)])

        assert compute_order_weight(source, source.get_order("1")) == 950.0

    def test_no_weights_is_unknown(self, db_session, source):
        add_order(db_session, "1", weights=[None, "n/a"])

        assert compute_order_weight(source, source.get_order("1")) is None

    def test_unknown_product_contributes_nothing(self, db_session, source):
        add_product(db_session, "p1", weight="300")
        add_order(db_session, "1", items=[("p1", 1), ("missing", 4), (None, 1)])

        assert compute_order_weight(source, source.get_order("1")) == 300.0

    def test_partial_weights_by_policy(self, db_session, source):
        add_order(db_session, "1", weights=["500", None])
        order = source.get_order("1")

        assert compute_order_weight(source, order, WeightPolicy.known_items_only) == 500.0
        assert compute_order_weight(source, order, WeightPolicy.require_all_items) is None


class TestAssignTracking:
    def test_light_order_gets_eg(self, db_session, engine, source):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])
        add_entries(db_session, TrackingClass.CG, ["CG1IN"])
        add_order(db_session, "1", weights=["1000"])

        result = engine.assign_tracking("1")

        assert result.tracking_class == TrackingClass.EG
        assert result.tracking_id == "EG1IN"
        assert result.weight_grams == 1000.0
        assert bound_number(source, "1") == "EG1IN"

    def test_heavy_order_gets_cg(self, db_session, engine):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])
        add_entries(db_session, TrackingClass.CG, ["CG1IN"])
        add_order(db_session, "1", weights=["1000.01"])

        assert engine.assign_tracking("1").tracking_class == TrackingClass.CG

    def test_unweighable_order_gets_cg(self, db_session, engine):
        add_entries(db_session, TrackingClass.CG, ["CG1IN"])
        add_order(db_session, "1")

        result = engine.assign_tracking("1")

        assert result.tracking_class == TrackingClass.CG
        assert result.weight_grams is None

    def test_require_all_items_policy_routes_partial_to_cg(self, db_session, source):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])
        add_entries(db_session, TrackingClass.CG, ["CG1IN"])
        add_order(db_session, "1", weights=["200", ""])
        engine = TrackingAssignmentEngine(
            db_session, source, weight_policy=WeightPolicy.require_all_items
        )

        assert engine.assign_tracking("1").tracking_class == TrackingClass.CG

    def test_claim_mirrors_order_status(self, db_session, engine):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])
        add_order(db_session, "1", status="process-to-ship", weights=["10"])

        engine.assign_tracking("1")

        entry = TrackingPoolStore(db_session).find_entry("EG1IN")
        assert entry.order_id == "1"
        assert entry.current_status == "process-to-ship"

    def test_second_call_is_noop(self, db_session, engine, source):
        add_entries(db_session, TrackingClass.EG, ["EG1IN", "EG2IN"])
        add_order(db_session, "1", weights=["10"])

        engine.assign_tracking("1")
        assert engine.assign_tracking("1") is None

        assert bound_number(source, "1") == "EG1IN"
        assert TrackingPoolStore(db_session).find_entry("EG2IN").is_available

    def test_order_with_existing_number_is_skipped(self, db_session, engine):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])
        add_order(db_session, "1", weights=["10"], tracking_number="EG999IN")

        assert engine.assign_tracking("1") is None
        assert TrackingPoolStore(db_session).find_entry("EG1IN").is_available

    def test_unknown_order_is_noop(self, db_session, engine):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])

        assert engine.assign_tracking("404") is None
        assert TrackingPoolStore(db_session).find_entry("EG1IN").is_available

    def test_entry_bound_but_meta_missing_is_noop(self, db_session, engine, source):
        add_entries(db_session, TrackingClass.EG, ["EG1IN", "EG2IN"])
        add_order(db_session, "1", weights=["10"])
        TrackingPoolStore(db_session).claim_next(TrackingClass.EG, "1", None)
        db_session.commit()

        assert engine.assign_tracking("1") is None
        assert bound_number(source, "1") is None
        assert TrackingPoolStore(db_session).find_entry("EG2IN").is_available

    def test_pool_drains_then_exhausts(self, db_session, engine, source):
        add_entries(db_session, TrackingClass.EG, ["EG1IN", "EG2IN"])
        for order_id in ("A", "B", "C"):
            add_order(db_session, order_id, weights=["100"])

        assert engine.assign_tracking("A").tracking_id == "EG1IN"
        assert engine.assign_tracking("B").tracking_id == "EG2IN"
        with pytest.raises(NoAvailableTrackingNumberError) as exc_info:
            engine.assign_tracking("C")

        assert exc_info.value.tracking_class == "EG"
        assert exc_info.value.order_id == "C"
        assert bound_number(source, "C") is None

    def test_exhaustion_is_audited(self, db_session, engine, log_dir):
        add_order(db_session, "7", weights=["5000"])

        with pytest.raises(NoAvailableTrackingNumberError):
            engine.assign_tracking("7")

        audit = db_session.execute(
            select(AuditLog).where(AuditLog.order_id == "7")
        ).scalar_one()
        assert audit.level == "ERROR"
        assert audit.message.startswith("E-3001:")
        error_line = (log_dir / ASSIGNMENT_ERROR_LOG).read_text()
        assert "Order #7 tracking assignment failed: No available CG tracking numbers" in error_line

    def test_success_writes_assignment_log(self, db_session, engine, log_dir):
        add_entries(db_session, TrackingClass.EG, ["EG123456789IN"])
        add_order(db_session, "1042", weights=["750"])

        engine.assign_tracking("1042")

        line = (log_dir / ASSIGNMENT_LOG).read_text()
        assert line.endswith("Order #1042 assigned EG tracking number EG123456789IN. Weight: 750g\n")


class TestOrderTracking:
    def test_tracking_url(self, engine):
        assert engine.tracking_url("EG1IN") == DEFAULT_TRACKING_URL_TEMPLATE.format(
            tracking_number="EG1IN"
        )

    def test_get_order_tracking(self, db_session, engine):
        add_entries(db_session, TrackingClass.CG, ["CG1IN"])
        add_order(db_session, "1", status="process-to-ship")
        engine.assign_tracking("1")

        tracking = engine.get_order_tracking("1")

        assert tracking.tracking_number == "CG1IN"
        assert tracking.tracking_class == TrackingClass.CG
        assert tracking.tracking_url.endswith("t=CG1IN&c=india-post")
        assert tracking.current_status == "process-to-ship"

    def test_get_order_tracking_without_number(self, db_session, engine):
        add_order(db_session, "1")

        tracking = engine.get_order_tracking("1")

        assert tracking.tracking_number is None
        assert tracking.tracking_url is None

    def test_get_order_tracking_unknown_order(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_order_tracking("404")


class TestManualTracking:
    def test_records_number(self, db_session, engine, source):
        add_order(db_session, "1")

        tracking = engine.record_manual_tracking("1", " RR123456IN ")

        assert tracking.tracking_number == "RR123456IN"
        assert tracking.tracking_class is None
        assert bound_number(source, "1") == "RR123456IN"

    @pytest.mark.parametrize("value,code", [("", "E-1001"), ("eg1in", "E-2001")])
    def test_rejects_bad_numbers(self, db_session, engine, value, code):
        add_order(db_session, "1")

        with pytest.raises(ValidationError) as exc_info:
            engine.record_manual_tracking("1", value)

        assert exc_info.value.code == code

    def test_order_with_number_conflicts(self, db_session, engine):
        add_order(db_session, "1", tracking_number="EG1IN")

        with pytest.raises(ConflictError):
            engine.record_manual_tracking("1", "EG2IN")

    def test_number_bound_to_other_order_conflicts(self, db_session, engine):
        add_entries(db_session, TrackingClass.EG, ["EG1IN"])
        add_order(db_session, "1", weights=["10"])
        add_order(db_session, "2")
        engine.assign_tracking("1")

        with pytest.raises(ConflictError) as exc_info:
            engine.record_manual_tracking("2", "EG1IN")

        assert exc_info.value.code == "E-3003"

    def test_manual_number_used_by_other_order_conflicts(self, db_session, engine):
        add_order(db_session, "1", tracking_number="RR1IN")
        add_order(db_session, "2")

        with pytest.raises(ConflictError):
            engine.record_manual_tracking("2", "RR1IN")

    def test_unknown_order(self, engine):
        with pytest.raises(NotFoundError):
            engine.record_manual_tracking("404", "EG1IN")

    def test_pooled_number_is_taken_out_of_the_pool(self, db_session, engine):
        add_entries(db_session, TrackingClass.EG, ["EG1IN", "EG2IN"])
        add_order(db_session, "A", status="process-to-ship")
        add_order(db_session, "B", weights=["10"])

        engine.record_manual_tracking("A", "EG1IN")
        result = engine.assign_tracking("B")

        entry = TrackingPoolStore(db_session).find_entry("EG1IN")
        assert entry.order_id == "A"
        assert entry.is_accessable == "No"
        assert entry.current_status == "process-to-ship"
        assert result.tracking_id == "EG2IN"

    def test_withdrawn_pooled_number_is_bound(self, db_session, engine):
        add_entries(db_session, TrackingClass.CG, ["CG1IN"], accessible=False)
        add_order(db_session, "A")

        engine.record_manual_tracking("A", "CG1IN")

        assert TrackingPoolStore(db_session).find_by_order("A").tracking_id == "CG1IN"


class TestConcurrentAssignment:
    def test_last_entry_goes_to_exactly_one_order(self, file_based_db):
        engine = create_engine(file_based_db, connect_args={"timeout": 30})

        @event.listens_for(engine, "connect")
        def use_wal(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.close()

        Session = sessionmaker(bind=engine, autoflush=False)
        order_ids = [str(n) for n in range(6)]
        with Session() as db:
            add_entries(db, TrackingClass.EG, ["EG1IN"])
            for order_id in order_ids:
                add_order(db, order_id, weights=["500"])

        assigned: list[str] = []
        exhausted: list[str] = []
        errors: list[Exception] = []
        barrier = threading.Barrier(len(order_ids))

        def worker(order_id: str) -> None:
            try:
                with Session() as db:
                    barrier.wait()
                    result = TrackingAssignmentEngine(db, SqlOrderDataSource(db)).assign_tracking(
                        order_id
                    )
                    assigned.append(result.tracking_id)
            except NoAvailableTrackingNumberError:
                exhausted.append(order_id)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(o,)) for o in order_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        engine.dispose()

        assert errors == []
        assert assigned == ["EG1IN"]
        assert len(exhausted) == len(order_ids) - 1
