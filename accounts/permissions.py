from rest_framework import permissions

from accounts.models import CustomUser


class IsClient(permissions.BasePermission):
    """
    Allows access only to authenticated users with the 'CLIENT' role.
    """

    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.role == CustomUser.Role.CLIENT
        )


class IsBarber(permissions.BasePermission):
    """
    Allows access only to 'BARBER' users linked to a barber profile.
    """

    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.role == CustomUser.Role.BARBER
            and getattr(request.user, "barber_profile", None) is not None
        )
