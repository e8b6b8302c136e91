"""Commitment workflow: the member and distributor operations end to end."""
from decimal import Decimal

import pytest
from django.core import mail
from django.db import IntegrityError, transaction

from commitments.exceptions import (
    BelowMinimumQuantity,
    Conflict,
    InvalidStatus,
    NotFound,
    PriceMismatch,
    UnknownSize,
    ValidationError,
)
from commitments.models import Commitment, CommitmentStatusChange
from commitments.services import (
    Cancelled,
    Revised,
    _unit_of_work,
    _write_commitment,
    cancel_commitment,
    commitment_snapshot,
    create_commitment,
    load_commitment,
    revise_commitment_sizes,
    update_commitment_status,
)
from core.models import AuditLog
from deals.models import Deal
from notifications.models import Notification


def _snapshot(commitment_id):
    return commitment_snapshot(load_commitment(commitment_id))


@pytest.mark.django_db
class TestCreateCommitment:
    def test_single_size_without_tier(self, single_size_deal, member_user):
        commitment = create_commitment(single_size_deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        assert commitment.status == Commitment.Status.PENDING
        assert commitment.total_price == Decimal("600.00")
        assert commitment.applied_discount_tier is None
        assert commitment.version == 1
        lines = commitment.size_commitments
        assert [(line.size, line.quantity, line.total_price) for line in lines] == [
            ("Large", 60, Decimal("600.00")),
        ]

    def test_plain_quantity_on_single_size_deal(self, single_size_deal, member_user):
        commitment = create_commitment(single_size_deal.pk, member_user.pk, 60)
        assert commitment.total_quantity == 60
        assert commitment.total_price == Decimal("600.00")

    def test_plain_quantity_on_multi_size_deal(self, deal, member_user):
        with pytest.raises(UnknownSize):
            create_commitment(deal.pk, member_user.pk, 60)

    def test_tier_applies_on_total_quantity(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        assert commitment.total_price == Decimal("1080.00")
        assert commitment.applied_discount_tier.tier_quantity == 100
        assert commitment.applied_discount_percent == Decimal("10")
        assert commitment.size_commitments[0].price_per_unit == Decimal("9.0000")

    def test_client_prices_are_ignored(self, single_size_deal, member_user):
        commitment = create_commitment(
            single_size_deal.pk,
            member_user.pk,
            [{"size": "Large", "quantity": 60, "price_per_unit": "0.01"}],
        )
        assert commitment.total_price == Decimal("600.00")

    def test_duplicate_sizes_are_merged(self, deal, member_user):
        commitment = create_commitment(
            deal.pk,
            member_user.pk,
            [{"size": "Large", "quantity": 30}, {"size": "Large", "quantity": 30}],
        )
        assert [(line.size, line.quantity) for line in commitment.size_commitments] == [("Large", 60)]

    def test_below_minimum(self, deal, member_user):
        with pytest.raises(BelowMinimumQuantity):
            create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 10}])
        assert not Commitment.objects.exists()

    def test_unknown_size(self, deal, member_user):
        with pytest.raises(UnknownSize):
            create_commitment(deal.pk, member_user.pk, [{"size": "Keg", "quantity": 60}])

    def test_inactive_deal(self, make_deal, member_user):
        inactive = make_deal(status=Deal.Status.INACTIVE)
        with pytest.raises(InvalidStatus):
            create_commitment(inactive.pk, member_user.pk, 60)

    def test_missing_deal_or_user(self, deal, member_user):
        with pytest.raises(NotFound):
            create_commitment("00000000-0000-0000-0000-000000000000", member_user.pk, 60)
        with pytest.raises(NotFound):
            create_commitment(deal.pk, "not-a-uuid", 60)

    def test_second_commit_reprices_the_pending_one(self, deal, member_user):
        first = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        second = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        assert second.pk == first.pk
        assert Commitment.objects.count() == 1
        assert second.total_price == Decimal("1080.00")
        assert second.version == 2

    def test_side_effects_after_commit(
        self, deal, member_user, distributor_user, admin_user, django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        distributor_note = Notification.objects.get(recipient=distributor_user)
        assert distributor_note.priority == Notification.Priority.HIGH
        assert distributor_note.related_id == str(commitment.pk)
        assert Notification.objects.get(recipient=admin_user).priority == Notification.Priority.MEDIUM
        assert AuditLog.objects.filter(action="COMMITMENT_CREATED", entity_id=str(commitment.pk)).exists()
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == [member_user.email]
        assert "Sparkling Water" in mail.outbox[0].subject

    def test_failing_side_effect_does_not_fail_the_commitment(
        self, deal, member_user, monkeypatch, django_capture_on_commit_callbacks, caplog,
    ):
        def _broken(*args, **kwargs):
            raise RuntimeError("notification store down")

        monkeypatch.setattr("commitments.services.create_notification", _broken)
        with django_capture_on_commit_callbacks(execute=True):
            commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        assert Commitment.objects.filter(pk=commitment.pk).exists()
        assert "notification store down" in caplog.text
        # The remaining effects still ran.
        assert len(mail.outbox) == 1


@pytest.mark.django_db
class TestReviseCommitmentSizes:
    def test_switching_sizes_drops_zero_lines(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        outcome = revise_commitment_sizes(
            commitment.pk,
            member_user.pk,
            [{"size": "Large", "quantity": 0}, {"size": "Medium", "quantity": 80}],
        )

        assert isinstance(outcome, Revised)
        assert not outcome.cancelled
        revised = load_commitment(commitment.pk)
        assert revised.status == Commitment.Status.PENDING
        assert revised.total_price == Decimal("640.00")
        assert revised.applied_discount_tier is None
        assert [(line.size, line.quantity) for line in revised.size_commitments] == [("Medium", 80)]

    def test_all_zero_cancels_and_keeps_totals(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        outcome = revise_commitment_sizes(
            commitment.pk, member_user.pk, [{"size": "Large", "quantity": 0}],
        )

        assert isinstance(outcome, Cancelled)
        assert outcome.cancelled
        cancelled = load_commitment(commitment.pk)
        assert cancelled.status == Commitment.Status.CANCELLED
        assert cancelled.total_price == Decimal("1080.00")
        assert cancelled.total_quantity == 120

    def test_declined_commitment_is_unchanged(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        update_commitment_status(commitment.pk, "declined", distributor_response="Out of stock")
        before = _snapshot(commitment.pk)

        with pytest.raises(InvalidStatus):
            revise_commitment_sizes(commitment.pk, member_user.pk, [{"size": "Large", "quantity": 70}])

        assert _snapshot(commitment.pk) == before

    def test_other_members_cannot_see_it(self, deal, member_user, other_member):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        with pytest.raises(NotFound):
            revise_commitment_sizes(commitment.pk, other_member.pk, [{"size": "Large", "quantity": 70}])

    def test_below_minimum_leaves_state_intact(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        before = _snapshot(commitment.pk)

        with pytest.raises(BelowMinimumQuantity):
            revise_commitment_sizes(commitment.pk, member_user.pk, [{"size": "Large", "quantity": 20}])

        assert _snapshot(commitment.pk) == before

    def test_stale_version_is_a_conflict(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        revise_commitment_sizes(commitment.pk, member_user.pk, [{"size": "Large", "quantity": 70}])

        with pytest.raises(Conflict) as excinfo:
            revise_commitment_sizes(
                commitment.pk, member_user.pk, [{"size": "Large", "quantity": 80}], expected_version=1,
            )
        assert excinfo.value.retryable
        assert load_commitment(commitment.pk).total_quantity == 70

    def test_malformed_version_is_rejected(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        before = _snapshot(commitment.pk)

        with pytest.raises(ValidationError, match="Invalid expected_version"):
            revise_commitment_sizes(
                commitment.pk, member_user.pk, [{"size": "Large", "quantity": 80}], expected_version="abc",
            )
        assert _snapshot(commitment.pk) == before


@pytest.mark.django_db
class TestCancelCommitment:
    def test_member_cancels_pending(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        cancelled = cancel_commitment(commitment.pk, member_user.pk)

        assert cancelled.status == Commitment.Status.CANCELLED
        assert cancelled.total_price == Decimal("600.00")

    def test_cannot_cancel_twice(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        cancel_commitment(commitment.pk, member_user.pk)

        with pytest.raises(InvalidStatus):
            cancel_commitment(commitment.pk, member_user.pk)


@pytest.mark.django_db
class TestUpdateCommitmentStatus:
    def test_approval_with_quantity_override(self, deal, member_user, distributor_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        approved = update_commitment_status(
            commitment.pk,
            "approved",
            modified_quantity=90,
            modified_total_price=Decimal("900.00"),
            actor=distributor_user,
        )

        assert approved.status == Commitment.Status.APPROVED
        assert approved.modified_by_distributor
        assert approved.modified_total_price == Decimal("900.00")
        assert approved.final_quantity == 90
        assert approved.decided_at is not None
        deal.refresh_from_db()
        assert deal.total_sold == 90
        assert deal.total_revenue == Decimal("900.00")
        assert list(deal.notification_history()) == [str(member_user.pk)]

        change = CommitmentStatusChange.objects.get(commitment=commitment)
        assert (change.previous_status, change.new_status) == ("pending", "approved")
        assert change.processed_by == CommitmentStatusChange.ProcessedBy.DISTRIBUTOR
        assert change.commitment_details["quantity"] == 90

    def test_plain_approval_uses_commitment_totals(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        update_commitment_status(commitment.pk, "approved")

        deal.refresh_from_db()
        assert deal.total_sold == 120
        assert deal.total_revenue == Decimal("1080.00")

    def test_price_mismatch_leaves_everything_untouched(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])
        before = _snapshot(commitment.pk)

        with pytest.raises(PriceMismatch):
            update_commitment_status(
                commitment.pk, "approved", modified_quantity=90, modified_total_price=Decimal("800.00"),
            )

        assert _snapshot(commitment.pk) == before
        deal.refresh_from_db()
        assert deal.total_sold == 0
        assert not CommitmentStatusChange.objects.exists()

    def test_unknown_status(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        with pytest.raises(InvalidStatus):
            update_commitment_status(commitment.pk, "shipped")

    def test_terminal_commitment_cannot_be_decided_again(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        update_commitment_status(commitment.pk, "approved")

        with pytest.raises(InvalidStatus):
            update_commitment_status(commitment.pk, "approved")

        deal.refresh_from_db()
        assert deal.total_sold == 60

    def test_counter_proposal_then_plain_update_clears_it(self, deal, member_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 120}])

        proposed = update_commitment_status(commitment.pk, "pending", modified_quantity=100)
        assert proposed.modified_by_distributor
        assert proposed.modified_quantity == 100

        reset = update_commitment_status(commitment.pk, "pending", distributor_response="Never mind")
        assert not reset.modified_by_distributor
        assert reset.modified_total_price is None
        assert reset.modified_size_commitments == []
        assert reset.final_quantity == 120

    def test_admin_decision_is_recorded_as_admin(self, deal, member_user, admin_user):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        update_commitment_status(commitment.pk, "declined", actor=admin_user)

        change = CommitmentStatusChange.objects.get(commitment=commitment)
        assert change.processed_by == CommitmentStatusChange.ProcessedBy.ADMIN
        assert change.processed_by_user == admin_user

    def test_member_is_told_after_commit(
        self, deal, member_user, distributor_user, django_capture_on_commit_callbacks,
    ):
        commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        with django_capture_on_commit_callbacks(execute=True):
            update_commitment_status(
                commitment.pk, "approved", distributor_response="See you Friday", actor=distributor_user,
            )

        note = Notification.objects.get(recipient=member_user)
        assert note.sub_type == "commitment_approved"
        assert note.priority == Notification.Priority.HIGH
        assert "approved" in mail.outbox[-1].subject
        assert "See you Friday" in mail.outbox[-1].body
        audit = AuditLog.objects.get(action="COMMITMENT_STATUS_CHANGED")
        assert audit.before_json["status"] == "pending"
        assert audit.after_json["status"] == "approved"


@pytest.mark.django_db
def test_write_with_stale_version_raises_conflict(deal, member_user):
    commitment = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
    Commitment.objects.filter(pk=commitment.pk).update(version=5)

    with pytest.raises(Conflict):
        _write_commitment(commitment, status=Commitment.Status.CANCELLED)

    assert Commitment.objects.get(pk=commitment.pk).status == Commitment.Status.PENDING


@pytest.mark.django_db
class TestOnePendingCommitmentPerMember:
    def test_second_pending_row_is_refused(self, deal, member_user):
        create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Commitment.objects.create(user=member_user, deal=deal)

        assert Commitment.objects.filter(user=member_user, deal=deal).count() == 1

    def test_lost_insert_race_is_a_conflict(self, deal, member_user):
        create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])

        with pytest.raises(Conflict) as excinfo:
            with _unit_of_work("create_commitment"):
                Commitment.objects.create(user=member_user, deal=deal)

        assert excinfo.value.retryable
        assert Commitment.objects.filter(user=member_user, deal=deal).count() == 1

    def test_cancelled_commitment_does_not_block_a_new_one(self, deal, member_user):
        first = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 60}])
        cancel_commitment(first.pk, member_user.pk)

        second = create_commitment(deal.pk, member_user.pk, [{"size": "Large", "quantity": 70}])

        assert second.pk != first.pk
        assert load_commitment(second.pk).status == Commitment.Status.PENDING
