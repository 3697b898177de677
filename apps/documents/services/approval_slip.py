from django.utils import timezone

from apps.purchases.workflow import APPROVAL_ROLES, format_yen

from .receipt_storage import receipt_storage

SLIP_TITLE = '購入申請書'
SLIP_FOOTER = 'この書類は電子決裁システムにより出力されました'
UNAPPROVED_LABEL = '未承認'


def _format_quantity(quantity):
    if quantity == quantity.to_integral_value():
        return str(int(quantity))
    return str(quantity.normalize())


def _stamp_slots(approvals):
    """Stamp boxes laid out right to left, 理事長 first"""
    by_role = {approval.role: approval for approval in approvals}
    slots = []
    for role in reversed(APPROVAL_ROLES):
        approval = by_role.get(role)
        if approval is None:
            slots.append({
                'role': role,
                'approved': False,
                'name': None,
                'date': None,
                'label': UNAPPROVED_LABEL,
            })
            continue
        slots.append({
            'role': role,
            'approved': True,
            'name': approval.name,
            'date': timezone.localtime(approval.approved_at).strftime('%y/%m/%d'),
            'label': approval.name,
        })
    return slots


def build_approval_slip(purchase_request, request=None):
    """
    Printable approval slip of one request.

    ``request`` is the current HTTP request, used to build an absolute
    receipt URL.
    """
    approvals = list(purchase_request.approvals.all())
    items = list(purchase_request.items.all())
    revision = purchase_request.revision_number or 1

    return {
        'title': SLIP_TITLE,
        'request_id': str(purchase_request.pk),
        'short_id': str(purchase_request.pk)[:8],
        'revision_number': revision,
        'revision_label': f'第{revision}版' if revision > 1 else None,
        'club_name': purchase_request.club.name,
        'status': purchase_request.status,
        'status_label': purchase_request.get_status_display(),
        'date': purchase_request.date.isoformat() if purchase_request.date else None,
        'job_title': purchase_request.job_title,
        'applicant_name': purchase_request.applicant_name,
        'category': purchase_request.category,
        'reason': purchase_request.reason,
        'payee': purchase_request.payee,
        'stamps': _stamp_slots(approvals),
        'items': [
            {
                'no': index,
                'item_name': item.item_name,
                'quantity': _format_quantity(item.quantity),
                'unit_price': format_yen(item.unit_price),
                'amount': format_yen(item.amount),
            }
            for index, item in enumerate(items, start=1)
        ],
        'item_count': len(items),
        'total_amount': format_yen(purchase_request.total_amount),
        'receipt_path': purchase_request.receipt_path,
        'receipt_url': receipt_storage.signed_url(purchase_request.receipt_path, request),
        'rejection_reason': purchase_request.rejection_reason,
        'approval_history': [
            {
                'role': approval.role,
                'name': approval.name,
                'approved_at': timezone.localtime(approval.approved_at).strftime('%Y/%m/%d %H:%M'),
            }
            for approval in approvals
        ],
        'footer': SLIP_FOOTER,
        'printed_at': timezone.localtime().strftime('%Y/%m/%d %H:%M'),
    }
