from rest_framework.permissions import BasePermission


class BelongsToRestaurant(BasePermission):
    """Authenticated user attached to a restaurant"""

    message = 'Your account is not attached to a restaurant.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.restaurant_id)


class IsRestaurantManager(BelongsToRestaurant):
    message = 'Only owners and managers can perform this action.'

    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.can_approve_purchase_orders
