"""Tests for PenaltyService."""

import pytest
from datetime import date, datetime, UTC
from decimal import Decimal

from sntbilling.domain.entities import PenaltyStatus
from sntbilling.domain.errors import ConflictError, NotFoundError, ValidationError
from sntbilling.domain.penalty import PenaltyService, calculate_penalty

T0 = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
# A full year after T0, so a 10% rate costs exactly a tenth of the debt
YEAR_LATER = date(2026, 1, 1)
RATE = Decimal("0.1")


@pytest.fixture
def penalty_service(temp_db):
    return PenaltyService(temp_db)


@pytest.fixture
def water_tariff(tariff_service):
    tariff_id = tariff_service.create_tariff(
        code="water", title="Water", amount="500", active_from=date(2024, 1, 1)
    )
    return tariff_service.get_tariff(tariff_id)


@pytest.fixture
def overdue(accrual_service, sample_period, sample_tariff):
    """A-1 owes 1000 and B-2 owes 100, both charged at T0."""
    a1 = accrual_service.create_accrual(sample_period.id, "A-1", sample_tariff.id, created_at=T0)
    b2 = accrual_service.create_accrual(
        sample_period.id, "B-2", sample_tariff.id, amount="100", created_at=T0
    )
    return a1, b2


def _pay(payment_service, allocation_service, plot_id, amount):
    payment_id = payment_service.create_payment(paid_at=date(2025, 1, 20), amount=amount, plot_id=plot_id)
    allocation_service.allocate_payment(payment_id)


def test_calculate_penalty_rounds_to_kopecks():
    assert calculate_penalty(Decimal("1000"), RATE, 100) == Decimal("27.40")
    assert calculate_penalty(Decimal("1000"), RATE, 0) == Decimal("0.00")
    assert calculate_penalty(Decimal("0"), RATE, 100) == Decimal("0.00")


class TestPreview:
    """Penalty previews."""

    def test_preview_rows_and_total(self, penalty_service, overdue):
        a1, b2 = overdue

        preview = penalty_service.preview_penalty(YEAR_LATER, RATE)

        assert preview.as_of == YEAR_LATER
        assert preview.rate == RATE
        assert [(r.plot_id, r.accrual_id) for r in preview.rows] == [("A-1", a1), ("B-2", b2)]
        row = preview.rows[0]
        assert row.accrued_on == date(2025, 1, 1)
        assert row.days_overdue == 365
        assert row.remaining == Decimal("1000.00")
        assert row.penalty == Decimal("100.00")
        assert preview.total_penalty == Decimal("110.00")

    def test_partial_payment_reduces_base(self, penalty_service, payment_service, allocation_service, overdue):
        _pay(payment_service, allocation_service, "A-1", "400")

        preview = penalty_service.preview_penalty(YEAR_LATER, RATE, plot_id="A-1")

        assert preview.rows[0].remaining == Decimal("600.00")
        assert preview.rows[0].penalty == Decimal("60.00")

    def test_paid_accrual_has_no_penalty(self, penalty_service, payment_service, allocation_service, overdue):
        _pay(payment_service, allocation_service, "B-2", "100")

        preview = penalty_service.preview_penalty(YEAR_LATER, RATE)

        assert [r.plot_id for r in preview.rows] == ["A-1"]

    def test_nothing_overdue_before_accrual_date(self, penalty_service, overdue):
        preview = penalty_service.preview_penalty(date(2024, 12, 1), RATE)

        assert preview.rows == ()
        assert preview.total_penalty == Decimal("0")

    def test_min_penalty(self, penalty_service, overdue):
        preview = penalty_service.preview_penalty(YEAR_LATER, RATE, min_penalty=Decimal("50"))

        assert [r.plot_id for r in preview.rows] == ["A-1"]
        assert preview.total_penalty == Decimal("100.00")

    def test_period_filter(self, penalty_service, period_service, accrual_service, sample_tariff, overdue):
        feb = period_service.create_period(year=2025, month=2)
        accrual_service.create_accrual(feb, "A-1", sample_tariff.id, created_at=T0)

        preview = penalty_service.preview_penalty(YEAR_LATER, RATE, period_id=feb)

        assert [r.period_id for r in preview.rows] == [feb]

    @pytest.mark.parametrize("rate", ["0", "-0.1", "ten", Decimal("NaN")])
    def test_invalid_rate(self, penalty_service, rate):
        with pytest.raises(ValidationError, match="(?i)penalty rate"):
            penalty_service.preview_penalty(YEAR_LATER, rate)

    def test_unknown_period(self, penalty_service):
        with pytest.raises(NotFoundError):
            penalty_service.preview_penalty(YEAR_LATER, RATE, period_id=99)


class TestRecalculate:
    """Storing penalties per plot."""

    def test_creates_one_penalty_per_plot(self, penalty_service, accrual_service, sample_period,
                                          water_tariff, overdue):
        accrual_service.create_accrual(sample_period.id, "A-1", water_tariff.id, created_at=T0)

        result = penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)

        assert result.created == 2
        assert result.updated == 0
        a1 = penalty_service.list_penalties(plot_id="A-1")
        assert len(a1) == 1
        assert a1[0].amount == Decimal("150.00")
        assert a1[0].base_debt == Decimal("1500.00")
        assert a1[0].days_overdue == 365
        assert a1[0].as_of == YEAR_LATER
        assert a1[0].status is PenaltyStatus.ACTIVE

    def test_recalculation_updates_active_penalty(self, penalty_service, sample_period, overdue):
        penalty_service.recalculate_period(sample_period.id, date(2025, 4, 11), RATE)
        before = penalty_service.list_penalties(plot_id="A-1")[0]
        assert before.amount == Decimal("27.40")

        result = penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)

        assert result.updated == 2
        assert result.created == 0
        after = penalty_service.require_penalty(before.id)
        assert after.amount == Decimal("100.00")
        assert after.as_of == YEAR_LATER

    def test_frozen_penalty_keeps_amount(self, penalty_service, sample_period, overdue):
        penalty_service.recalculate_period(sample_period.id, date(2025, 4, 11), RATE, plot_ids=["A-1"])
        penalty = penalty_service.list_penalties(plot_id="A-1")[0]
        penalty_service.freeze_penalty(penalty.id, "agreed with the board")

        result = penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE, plot_ids=["A-1"])

        assert result.skipped_frozen == 1
        assert penalty_service.require_penalty(penalty.id).amount == Decimal("27.40")

    def test_voided_penalty_is_not_recreated(self, penalty_service, sample_period, overdue):
        penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE, plot_ids=["A-1"])
        penalty = penalty_service.list_penalties(plot_id="A-1")[0]
        penalty_service.void_penalty(penalty.id, "waived")

        result = penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE, plot_ids=["A-1"])
        assert result.skipped_voided == 1
        assert len(penalty_service.list_penalties(plot_id="A-1")) == 1

        result = penalty_service.recalculate_period(
            sample_period.id, YEAR_LATER, RATE, plot_ids=["A-1"], include_voided=True
        )
        assert result.created == 1
        statuses = [p.status for p in penalty_service.list_penalties(plot_id="A-1")]
        assert sorted(s.value for s in statuses) == ["active", "voided"]

    def test_paid_plot_is_skipped(self, penalty_service, payment_service, allocation_service,
                                  sample_period, overdue):
        _pay(payment_service, allocation_service, "B-2", "100")

        result = penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)

        assert result.created == 1
        assert result.skipped_zero == 1
        assert penalty_service.list_penalties(plot_id="B-2") == []

    def test_closed_period_can_be_recalculated(self, penalty_service, period_service, sample_period, overdue):
        period_service.close_period(sample_period.id)

        result = penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)

        assert result.created == 2

    def test_penalties_do_not_change_debt(self, penalty_service, debt_service, sample_period, overdue):
        penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)

        debts = debt_service.compute_debts_by_plot()

        assert [d.total_debt for d in debts] == [Decimal("1000.00"), Decimal("100.00")]

    def test_unknown_period(self, penalty_service):
        with pytest.raises(NotFoundError):
            penalty_service.recalculate_period(99, YEAR_LATER, RATE)


class TestLifecycle:
    """Void, freeze and their reversals."""

    @pytest.fixture
    def penalty(self, penalty_service, sample_period, overdue):
        penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE, plot_ids=["A-1"])
        return penalty_service.list_penalties(plot_id="A-1")[0]

    def test_void_and_unvoid(self, penalty_service, penalty):
        voided = penalty_service.void_penalty(penalty.id, "waived by the board")
        assert voided.status is PenaltyStatus.VOIDED
        assert voided.void_reason == "waived by the board"

        with pytest.raises(ConflictError, match="already voided"):
            penalty_service.void_penalty(penalty.id, "again")

        restored = penalty_service.unvoid_penalty(penalty.id)
        assert restored.status is PenaltyStatus.ACTIVE
        assert restored.void_reason is None

    def test_unvoid_blocked_by_newer_penalty(self, penalty_service, sample_period, penalty):
        penalty_service.void_penalty(penalty.id, "waived")
        penalty_service.recalculate_period(
            sample_period.id, YEAR_LATER, RATE, plot_ids=["A-1"], include_voided=True
        )

        with pytest.raises(ConflictError, match="already exists"):
            penalty_service.unvoid_penalty(penalty.id)

    def test_unvoid_active_penalty(self, penalty_service, penalty):
        with pytest.raises(ConflictError, match="not voided"):
            penalty_service.unvoid_penalty(penalty.id)

    def test_freeze_and_unfreeze(self, penalty_service, penalty):
        frozen = penalty_service.freeze_penalty(penalty.id, "court case")
        assert frozen.status is PenaltyStatus.FROZEN
        assert frozen.freeze_reason == "court case"

        with pytest.raises(ConflictError):
            penalty_service.freeze_penalty(penalty.id, "again")

        assert penalty_service.unfreeze_penalty(penalty.id).status is PenaltyStatus.ACTIVE
        with pytest.raises(ConflictError, match="not frozen"):
            penalty_service.unfreeze_penalty(penalty.id)

    def test_voided_penalty_cannot_be_frozen(self, penalty_service, penalty):
        penalty_service.void_penalty(penalty.id, "waived")

        with pytest.raises(ConflictError, match="Only active penalties"):
            penalty_service.freeze_penalty(penalty.id, "court case")

    def test_missing_penalty(self, penalty_service):
        assert penalty_service.get_penalty(42) is None
        with pytest.raises(NotFoundError, match="Penalty not found: 42"):
            penalty_service.void_penalty(42, "waived")


def test_list_by_status(penalty_service, sample_period, overdue):
    penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)
    b2 = penalty_service.list_penalties(plot_id="B-2")[0]
    penalty_service.freeze_penalty(b2.id, "court case")

    assert [p.plot_id for p in penalty_service.list_penalties(status="frozen")] == ["B-2"]
    assert [p.plot_id for p in penalty_service.list_penalties(status=PenaltyStatus.ACTIVE)] == ["A-1"]
    with pytest.raises(ValidationError, match="penalty status"):
        penalty_service.list_penalties(status="paid")


def test_summary(penalty_service, sample_period, overdue):
    penalty_service.recalculate_period(sample_period.id, YEAR_LATER, RATE)
    b2 = penalty_service.list_penalties(plot_id="B-2")[0]
    penalty_service.void_penalty(b2.id, "waived")

    summary = penalty_service.get_penalty_summary(sample_period.id)

    assert summary.total == 2
    assert summary.active == 1
    assert summary.frozen == 0
    assert summary.voided == 1
    assert summary.total_amount == Decimal("110.00")
    assert summary.active_amount == Decimal("100.00")
    assert penalty_service.get_penalty_summary(sample_period.id + 1).total == 0
