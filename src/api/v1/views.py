"""ViewSets for the group-buy API v1.

Views only translate HTTP to service calls: every rule about commitments
and deals lives in ``commitments.services`` and ``deals.services``.
"""
import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from commitments.exceptions import CommitmentError, Conflict, NotFound, StorageError
from commitments.models import Commitment
from deals.models import Deal
from notifications.models import Notification

from api.v1.pagination import StandardResultsSetPagination
from api.v1.permissions import IsDistributor, IsDistributorOrAdmin, IsMember
from api.v1.serializers import (
    CommitmentCancelSerializer,
    CommitmentCreateSerializer,
    CommitmentReviseSerializer,
    CommitmentSerializer,
    CommitmentStatusUpdateSerializer,
    DealCreateSerializer,
    DealSerializer,
    DealStatusSerializer,
    NotificationSerializer,
)

logger = logging.getLogger('groupbuy')

_ERROR_STATUS = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Conflict, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _error_response(exc):
    """Map a service error to ``{"code", "detail"}`` with the right status."""
    http_status = status.HTTP_400_BAD_REQUEST
    for exc_class, mapped in _ERROR_STATUS:
        if isinstance(exc, exc_class):
            http_status = mapped
            break
    if http_status >= 500:
        logger.error('API request failed: %s', exc)
    return Response(exc.as_dict(), status=http_status)


# ---------------------------------------------------------------------------
# Deal ViewSet
# ---------------------------------------------------------------------------

class DealViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Deals and their catalogue.

    - list/retrieve: members see active deals, distributors their own,
      admins everything
    - create: distributors publish a deal
    - set_status: the owning distributor or an admin toggles active/inactive
    """

    serializer_class = DealSerializer
    queryset = Deal.objects.select_related('distributor').prefetch_related('sizes', 'discount_tiers')
    filterset_fields = ['status', 'category', 'distributor']
    ordering_fields = ['created_at', 'deal_ends_at', 'name', 'total_sold']
    pagination_class = StandardResultsSetPagination

    def get_permissions(self):
        if self.action == 'create':
            return [IsDistributor()]
        if self.action == 'set_status':
            return [IsDistributorOrAdmin()]
        return [IsAuthenticated()]

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.is_admin:
            return qs
        if user.is_distributor:
            return qs.filter(distributor=user)
        return qs.filter(status=Deal.Status.ACTIVE)

    def create(self, request, *args, **kwargs):
        serializer = DealCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        from deals.services import create_deal
        try:
            deal = create_deal(
                distributor=request.user,
                name=data['name'],
                sizes=data['sizes'],
                min_qty_for_discount=data['min_qty_for_discount'],
                deal_ends_at=data['deal_ends_at'],
                deal_starts_at=data.get('deal_starts_at'),
                discount_tiers=data.get('discount_tiers'),
                description=data.get('description', ''),
                category=data.get('category', ''),
            )
        except CommitmentError as exc:
            return _error_response(exc)

        deal = self.get_queryset().get(pk=deal.pk)
        return Response(DealSerializer(deal).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='set-status')
    def set_status(self, request, pk=None):
        deal = self.get_object()
        serializer = DealStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        from deals.services import set_deal_status
        try:
            deal = set_deal_status(deal, serializer.validated_data['status'], actor=request.user)
        except CommitmentError as exc:
            return _error_response(exc)
        return Response(DealSerializer(self.get_queryset().get(pk=deal.pk)).data)


# ---------------------------------------------------------------------------
# Commitment ViewSet
# ---------------------------------------------------------------------------

class CommitmentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Commitment workflow.

    - create: a member commits to a deal (or re-prices their pending commitment)
    - revise: the owning member changes size quantities; all zeros cancel
    - cancel: the owning member withdraws a pending commitment
    - update_status: the deal's distributor (or an admin) approves,
      declines, cancels or counter-proposes
    """

    serializer_class = CommitmentSerializer
    queryset = Commitment.objects.select_related(
        'deal', 'user', 'applied_discount_tier',
    ).prefetch_related('size_lines')
    filterset_fields = ['status', 'deal', 'payment_status']
    ordering_fields = ['created_at', 'updated_at', 'total_price', 'status']
    pagination_class = StandardResultsSetPagination

    def get_permissions(self):
        if self.action in ('create', 'revise', 'cancel'):
            return [IsMember()]
        if self.action == 'update_status':
            return [IsDistributorOrAdmin()]
        return [IsAuthenticated()]

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.is_admin:
            return qs
        if user.is_distributor:
            return qs.filter(deal__distributor=user)
        return qs.filter(user=user)

    def _respond(self, commitment, http_status=status.HTTP_200_OK):
        commitment = self.get_queryset().get(pk=commitment.pk)
        return Response(CommitmentSerializer(commitment).data, status=http_status)

    def create(self, request, *args, **kwargs):
        serializer = CommitmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        requested = data['quantity'] if 'quantity' in data else data['size_commitments']

        from commitments.services import create_commitment
        try:
            commitment = create_commitment(data['deal_id'], request.user.pk, requested)
        except CommitmentError as exc:
            return _error_response(exc)
        return self._respond(commitment, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='revise')
    def revise(self, request, pk=None):
        serializer = CommitmentReviseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        from commitments.services import revise_commitment_sizes
        try:
            outcome = revise_commitment_sizes(
                pk,
                request.user.pk,
                serializer.validated_data['size_commitments'],
                expected_version=serializer.validated_data['expected_version'],
            )
        except CommitmentError as exc:
            return _error_response(exc)

        commitment = self.get_queryset().get(pk=outcome.commitment.pk)
        return Response({
            'cancelled': outcome.cancelled,
            'commitment': CommitmentSerializer(commitment).data,
        })

    @action(detail=True, methods=['post'], url_path='cancel')
    def cancel(self, request, pk=None):
        serializer = CommitmentCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        from commitments.services import cancel_commitment
        try:
            commitment = cancel_commitment(
                pk,
                request.user.pk,
                expected_version=serializer.validated_data['expected_version'],
            )
        except CommitmentError as exc:
            return _error_response(exc)
        return self._respond(commitment)

    @action(detail=True, methods=['post'], url_path='update-status')
    def update_status(self, request, pk=None):
        commitment = self.get_object()
        serializer = CommitmentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        from commitments.services import update_commitment_status
        try:
            commitment = update_commitment_status(
                commitment.pk,
                data['status'],
                distributor_response=data['distributor_response'],
                modified_quantity=data['modified_quantity'],
                modified_total_price=data['modified_total_price'],
                modified_size_commitments=data['modified_size_commitments'],
                actor=request.user,
                expected_version=data['expected_version'],
            )
        except CommitmentError as exc:
            return _error_response(exc)
        return self._respond(commitment)


# ---------------------------------------------------------------------------
# Notification ViewSet
# ---------------------------------------------------------------------------

class NotificationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """The requesting user's in-app notifications."""

    serializer_class = NotificationSerializer
    queryset = Notification.objects.select_related('sender')
    filterset_fields = ['is_read', 'type', 'priority']
    ordering_fields = ['created_at', 'priority']
    pagination_class = StandardResultsSetPagination
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return super().get_queryset().filter(recipient=self.request.user)

    @action(detail=True, methods=['post'], url_path='read')
    def read(self, request, pk=None):
        notification = self.get_object()

        from notifications.services import mark_as_read
        mark_as_read(notification, request.user)
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        from notifications.services import mark_all_as_read
        updated = mark_all_as_read(request.user)
        return Response({'updated': updated})
