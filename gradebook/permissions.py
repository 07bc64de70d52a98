from rest_framework import permissions


class IsEducatorOrAdmin(permissions.BasePermission):
    message = "Only educators and admins can perform this action."

    def has_permission(self, request, view):
        return is_educator(request.user)


class IsOwnerOrEducator(permissions.BasePermission):
    """Students see their own submissions and those of their groups."""

    def has_object_permission(self, request, view, obj):
        if is_educator(request.user):
            return True
        if obj.student_id is not None:
            return obj.student_id == request.user.id
        if obj.group_id is not None:
            return obj.group.members.filter(pk=request.user.pk).exists()
        return False


def is_educator(user):
    return bool(user and user.is_authenticated and (user.is_staff or user.is_superuser))
