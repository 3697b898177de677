"""
Error taxonomy shared by the portal services.

Services raise these; views recover them at the HTTP boundary and turn them
into ``{'error': message, 'code': code}`` responses. Messages are short and
user-facing.
"""


class WorkflowError(Exception):
    """Base class for every error a portal operation can report"""

    code = 'error'
    status_code = 400
    default_message = '処理に失敗しました。'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_payload(self):
        return {'error': self.message, 'code': self.code}


class AuthError(WorkflowError):
    code = 'auth_error'
    status_code = 401
    default_message = '認証エラー: ログインし直してください。'


class NotFoundError(WorkflowError):
    code = 'not_found'
    status_code = 404
    default_message = '対象のデータが見つかりません。'


class ForbiddenError(WorkflowError):
    code = 'forbidden'
    status_code = 403
    default_message = 'この操作を行う権限がありません。'


class ValidationError(WorkflowError):
    code = 'validation_error'
    status_code = 400
    default_message = '入力内容に誤りがあります。'


class InvalidTransitionError(WorkflowError):
    code = 'invalid_transition'
    status_code = 409
    default_message = '現在のステータスではこの操作を行えません。'


class StaleStateError(InvalidTransitionError):
    code = 'stale_state'
    default_message = '他の操作により申請が更新されました。画面を再読み込みしてください。'


class DuplicateApprovalError(WorkflowError):
    code = 'duplicate_approval'
    status_code = 409

    def __init__(self, role, message=None):
        self.role = role
        super().__init__(message or f'「{role}」はすでに承認済みです。')


class StorageError(WorkflowError):
    """
    Record store or blob store failure.

    The detailed cause is logged where the error is raised; callers only
    ever see the generic message.
    """

    code = 'storage_error'
    status_code = 503
    default_message = '保存処理に失敗しました。時間をおいて再度お試しください。'

    def __init__(self, operation, request_id=None):
        self.operation = operation
        self.request_id = request_id
        super().__init__()
