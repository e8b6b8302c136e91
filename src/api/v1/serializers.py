"""Serializers for the group-buy API v1."""
from rest_framework import serializers

from commitments.models import Commitment, SizeCommitment
from deals.models import Deal, DealSize, DiscountTier
from notifications.models import Notification


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------

class DealSizeSerializer(serializers.ModelSerializer):
    savings_per_unit = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = DealSize
        fields = ['size', 'original_cost', 'discount_price', 'bottles_per_case', 'savings_per_unit']


class DiscountTierSerializer(serializers.ModelSerializer):
    class Meta:
        model = DiscountTier
        fields = ['id', 'tier_quantity', 'tier_discount_percent']
        read_only_fields = ['id']


class DealSerializer(serializers.ModelSerializer):
    """Read serializer for Deal with its catalogue and tiers."""

    sizes = DealSizeSerializer(many=True, read_only=True)
    discount_tiers = DiscountTierSerializer(many=True, read_only=True)
    distributor_name = serializers.CharField(source='distributor.display_name', read_only=True)

    class Meta:
        model = Deal
        fields = [
            'id', 'name', 'description', 'category', 'distributor',
            'distributor_name', 'status', 'min_qty_for_discount', 'sizes',
            'discount_tiers', 'deal_starts_at', 'deal_ends_at',
            'total_sold', 'total_revenue', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class DealCreateSerializer(serializers.Serializer):
    """Input for ``POST /deals/``; business rules live in ``deals.services``."""

    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, default='', allow_blank=True)
    category = serializers.CharField(required=False, default='', allow_blank=True, max_length=100)
    min_qty_for_discount = serializers.IntegerField()
    deal_starts_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    deal_ends_at = serializers.DateTimeField()
    sizes = DealSizeSerializer(many=True)
    discount_tiers = DiscountTierSerializer(many=True, required=False, default=list)


class DealStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Deal.Status.choices)


# ---------------------------------------------------------------------------
# Commitments
# ---------------------------------------------------------------------------

class SizeLineInputSerializer(serializers.Serializer):
    """One requested ``{size, quantity}`` line. Client unit prices are ignored."""

    size = serializers.CharField(max_length=100)
    quantity = serializers.IntegerField(min_value=0)


class SizeCommitmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = SizeCommitment
        fields = ['size', 'quantity', 'price_per_unit', 'total_price']


class CommitmentSerializer(serializers.ModelSerializer):
    """Read serializer for Commitment with original and modified lines."""

    deal_name = serializers.CharField(source='deal.name', read_only=True)
    user_name = serializers.CharField(source='user.display_name', read_only=True)
    size_commitments = serializers.SerializerMethodField()
    modified_size_commitments = serializers.SerializerMethodField()
    applied_tier_quantity = serializers.SerializerMethodField()
    total_quantity = serializers.IntegerField(read_only=True)
    modified_quantity = serializers.IntegerField(read_only=True)
    final_quantity = serializers.IntegerField(read_only=True)
    final_total_price = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Commitment
        fields = [
            'id', 'deal', 'deal_name', 'user', 'user_name', 'status',
            'size_commitments', 'total_quantity', 'total_price',
            'applied_discount_percent', 'applied_tier_quantity',
            'modified_by_distributor', 'modified_size_commitments',
            'modified_quantity', 'modified_total_price', 'final_quantity',
            'final_total_price', 'distributor_response', 'payment_status',
            'version', 'decided_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_size_commitments(self, obj):
        return SizeCommitmentSerializer(obj.size_commitments, many=True).data

    def get_modified_size_commitments(self, obj):
        return SizeCommitmentSerializer(obj.modified_size_commitments, many=True).data

    def get_applied_tier_quantity(self, obj):
        tier = obj.applied_discount_tier
        return tier.tier_quantity if tier else None


class CommitmentCreateSerializer(serializers.Serializer):
    """Either ``quantity`` (single-size deals) or ``size_commitments``."""

    deal_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=0, required=False)
    size_commitments = SizeLineInputSerializer(many=True, required=False)

    def validate(self, attrs):
        has_quantity = 'quantity' in attrs
        has_lines = bool(attrs.get('size_commitments'))
        if has_quantity == has_lines:
            raise serializers.ValidationError(
                'Provide either quantity or size_commitments, not both.'
            )
        return attrs


class CommitmentReviseSerializer(serializers.Serializer):
    size_commitments = SizeLineInputSerializer(many=True, allow_empty=False)
    expected_version = serializers.IntegerField(required=False, allow_null=True, default=None)


class CommitmentCancelSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(required=False, allow_null=True, default=None)


class CommitmentStatusUpdateSerializer(serializers.Serializer):
    # Kept as a plain string so unknown values get the INVALID_STATUS error.
    status = serializers.CharField(max_length=20)
    distributor_response = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    modified_quantity = serializers.IntegerField(required=False, allow_null=True, default=None)
    modified_total_price = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True, default=None,
    )
    modified_size_commitments = SizeLineInputSerializer(
        many=True, required=False, allow_null=True, default=None,
    )
    expected_version = serializers.IntegerField(required=False, allow_null=True, default=None)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class NotificationSerializer(serializers.ModelSerializer):
    sender_name = serializers.SerializerMethodField()

    class Meta:
        model = Notification
        fields = [
            'id', 'type', 'sub_type', 'title', 'message', 'priority',
            'related_id', 'related_model', 'sender', 'sender_name',
            'is_read', 'read_at', 'created_at',
        ]
        read_only_fields = fields

    def get_sender_name(self, obj):
        return obj.sender.display_name if obj.sender else None
