from rest_framework import permissions


class IsPortalMember(permissions.BasePermission):
    """
    Authenticated user that has not been soft-deleted
    """

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user and
            user.is_authenticated and
            user.deleted_at is None
        )


class HasCompletedSetup(IsPortalMember):
    """
    Member that already belongs to a club
    """
    message = 'ユーザー情報が見つかりません。初期設定を完了してください。'

    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.has_completed_setup()


class IsAdministrator(IsPortalMember):
    """
    Permission for the administrative dashboard (admin, advisor, approver,
    global admin)
    """
    message = '権限がありません。管理者のみ閲覧できます。'

    def has_permission(self, request, view):
        return super().has_permission(request, view) and request.user.is_administrator()
