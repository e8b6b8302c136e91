"""Role-based DRF permissions for the group-buy API."""
from rest_framework.permissions import BasePermission


def _has_role(user, *roles):
    return bool(user and user.is_authenticated and user.role in roles)


class IsMember(BasePermission):
    """Allow access to users with the member role."""

    def has_permission(self, request, view):
        return _has_role(request.user, 'member')


class IsDistributor(BasePermission):
    """Allow access to users with the distributor role."""

    def has_permission(self, request, view):
        return _has_role(request.user, 'distributor')


class IsDistributorOrAdmin(BasePermission):
    """Allow access to distributors and admins.

    On objects, a distributor is limited to their own deals (or
    commitments on their own deals); admins may act on anything.
    """

    def has_permission(self, request, view):
        return _has_role(request.user, 'distributor', 'admin')

    def has_object_permission(self, request, view, obj):
        if request.user.role == 'admin':
            return True
        deal = getattr(obj, 'deal', obj)
        return deal.distributor_id == request.user.pk
